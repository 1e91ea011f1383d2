# -*- coding: utf-8 -*-

"""
Result application: writes model output back onto the Data sheet.

Every result line is handled on its own. A line that cannot be decoded,
carries a provider error or holds malformed model output is logged in
the Error Log and counted as failed; the remaining lines still apply.
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional, Tuple

import openai

from ..errors import CorrelationDecodeError, RemoteAPIError, ResultParseError
from ..utils.logbook import (
    API_ERROR,
    INVALID_FORMAT,
    INVALID_RESPONSE,
    PARSE_ERROR,
    PROCESSING_ERROR,
    Logbook,
)
from ..utils.workbook import (
    BATCH_ID_COLUMN,
    DATA_SHEET,
    STATUS_COLUMN,
    RowStatus,
    Sheet,
    Workbook,
    parse_status,
)
from .correlation import decode_custom_id
from .jobs import download_file_content, save_file_content
from .ledger import BatchLedger, BatchRecord, BatchResultSummary
from .pricing import calculate_cost
from .summary import UsageAggregator, build_cost_summary_records, format_summary


UNATTRIBUTED_ROW = 0


def parse_model_content(content) -> dict:
    """
    Parse the model's message content as a JSON object.

    Raises:
        ResultParseError: If the content is not a JSON object.
    """
    if isinstance(content, dict):
        return content
    try:
        parsed = json.loads(content)
    except (TypeError, json.JSONDecodeError) as e:
        raise ResultParseError(f"Model response is not valid JSON: {e}") from e
    if not isinstance(parsed, dict):
        raise ResultParseError(f"Model response is a JSON {type(parsed).__name__}, expected an object.")
    return parsed


def result_column_name(prompt_name: str, key: str) -> str:
    return f"{prompt_name} - {key}"


def write_result_columns(sheet: Sheet, row: int, prompt_name: str, parsed: dict):
    """One cell per top-level key, in the "{prompt} - {key}" column."""
    for key, value in parsed.items():
        sheet.set(row, result_column_name(prompt_name, key), value)


def advance_status(sheet: Sheet, row: int, status: int):
    """Raise the row status to `status`. A status is never lowered."""
    if parse_status(sheet.get(row, STATUS_COLUMN)) < status:
        sheet.set(row, STATUS_COLUMN, int(status))


def _error_message(error) -> str:
    if isinstance(error, dict):
        code = error.get('code')
        message = error.get('message') or json.dumps(error)
        return f"{code}: {message}" if code else message
    return str(error)


def apply_result_line(
        sheet: Sheet,
        line: str,
        batch_id: str,
        logbook: Logbook,
        usage: UsageAggregator,
    ) -> bool:
    """
    Apply one line of a batch output document.

    Returns:
        bool: True when the row received the model output.
    """
    try:
        result = json.loads(line)
    except json.JSONDecodeError as e:
        logbook.log_error(UNATTRIBUTED_ROW, INVALID_FORMAT, f"Malformed result line: {e}", batch_id)
        return False
    if not isinstance(result, dict):
        logbook.log_error(UNATTRIBUTED_ROW, INVALID_FORMAT, "Result line is not a JSON object", batch_id)
        return False

    try:
        correlation = decode_custom_id(result.get('custom_id'))
    except CorrelationDecodeError as e:
        logbook.log_error(UNATTRIBUTED_ROW, INVALID_FORMAT, str(e), batch_id)
        return False

    row = correlation.row
    if not sheet.has_row(row):
        logbook.log_error(row, PROCESSING_ERROR, f"Row {row} does not exist in the Data sheet", batch_id)
        return False

    try:
        return _apply_response(sheet, row, correlation.prompt_name, result, batch_id, logbook, usage)
    except Exception as e:
        logbook.log_error(row, PROCESSING_ERROR, f"Could not apply result: {type(e).__name__}: {e}", batch_id)
        return False


def _token_count(value) -> int:
    try:
        return max(int(float(value)), 0)
    except (TypeError, ValueError):
        return 0


def _apply_response(
        sheet: Sheet,
        row: int,
        prompt_name: str,
        result: dict,
        batch_id: str,
        logbook: Logbook,
        usage: UsageAggregator,
    ) -> bool:
    if result.get('error'):
        logbook.log_error(row, API_ERROR, _error_message(result['error']), batch_id)
        return False

    response = result.get('response')
    if not isinstance(response, dict):
        response = {}
    body = response.get('body')
    if response.get('status_code') != 200 or not isinstance(body, dict):
        message = f"Unexpected response (status code {response.get('status_code')})"
        if isinstance(body, dict) and body.get('error'):
            message = _error_message(body['error'])
        logbook.log_error(row, INVALID_RESPONSE, message, batch_id)
        return False

    try:
        content = body['choices'][0]['message']['content']
    except (KeyError, IndexError, TypeError):
        logbook.log_error(row, INVALID_RESPONSE, "Response has no message content", batch_id)
        return False

    try:
        parsed = parse_model_content(content)
    except ResultParseError as e:
        logbook.log_error(row, PARSE_ERROR, str(e), batch_id)
        return False

    # Usage and cost first, so a failure here leaves the row untouched
    model = str(body.get('model') or '')
    tokens = body.get('usage')
    if not isinstance(tokens, dict):
        tokens = {}
    input_tokens = _token_count(tokens.get('prompt_tokens'))
    output_tokens = _token_count(tokens.get('completion_tokens'))
    total_tokens = _token_count(tokens.get('total_tokens')) or input_tokens + output_tokens
    cost = calculate_cost(model, input_tokens, output_tokens, mode="batch")

    write_result_columns(sheet, row, prompt_name, parsed)
    advance_status(sheet, row, RowStatus.APPLIED)
    if not sheet.get(row, BATCH_ID_COLUMN).strip():
        sheet.set(row, BATCH_ID_COLUMN, batch_id)

    usage.add(prompt_name, row, input_tokens, output_tokens, total_tokens, cost)
    # The rendered prompt is not part of the output document
    logbook.log_execution(row, model, "", content,
                          input_tokens, output_tokens, total_tokens, cost)
    return True


def apply_result_document(
        sheet: Sheet,
        document: str,
        batch_id: str,
        logbook: Logbook,
    ) -> Tuple[BatchResultSummary, UsageAggregator]:
    """
    Apply every non-blank line of a batch output document.

    Returns:
        tuple: (result counts, per-prompt usage of the successful lines)
    """
    summary = BatchResultSummary()
    usage = UsageAggregator()
    for line in document.splitlines():
        if not line.strip():
            continue
        summary.total += 1
        try:
            applied = apply_result_line(sheet, line, batch_id, logbook, usage)
        except Exception as e:
            logbook.log_error(UNATTRIBUTED_ROW, PROCESSING_ERROR,
                              f"Could not apply result line: {type(e).__name__}: {e}", batch_id)
            applied = False
        if applied:
            summary.success += 1
        else:
            summary.failed += 1
    return summary, usage


def apply_batch_results(
        client,
        workbook: Workbook,
        ledger: BatchLedger,
        record: BatchRecord,
        logbook: Logbook,
        output_folder: Optional[str | Path] = None,
    ) -> BatchResultSummary:
    """
    Download a completed batch's output and write it into the Data sheet.

    A batch already marked processed is returned as is, with its stored
    counts and without any download. Otherwise the Data sheet is saved
    first and the ledger entry is marked processed afterwards, so an
    interrupted call can simply be repeated.

    Args:
        client: OpenAI API client.
        workbook: The workbook.
        ledger: The batch ledger holding `record`.
        record: The ledger entry of the batch.
        logbook: Record sheets writer.
        output_folder (str): Where to keep a copy of the output document.

    Returns:
        BatchResultSummary: Counts of total, succeeded and failed lines.

    Raises:
        RemoteAPIError: If the batch has no output file or the download fails.
    """
    if record.processed:
        logging.info(f"Batch {record.local_id} was already processed.")
        return record.results or BatchResultSummary()

    if not record.output_file_id:
        raise RemoteAPIError(f"Batch {record.local_id} has no output file yet (status: {record.status}).")

    started_at = datetime.now()
    try:
        document = download_file_content(client, record.output_file_id)
    except openai.APIError as e:
        raise RemoteAPIError(f"Could not download results of batch {record.local_id}: {e}") from e
    if output_folder is not None:
        save_file_content(document, Path(output_folder) / "output.jsonl")

    sheet = workbook.data
    summary, usage = apply_result_document(sheet, document, record.local_id, logbook)
    ended_at = datetime.now()

    for cost_record in build_cost_summary_records(
            usage, started_at, ended_at, title_suffix=" (Batch)",
            duration=(ended_at - started_at).total_seconds()):
        logbook.log_cost_summary(cost_record)

    workbook.save(DATA_SHEET)
    logbook.save()
    ledger.mark_processed(record, summary)
    ledger.save()

    logging.info(f"Batch {record.local_id}: {summary.success} succeeded, {summary.failed} failed.")
    logging.debug("\n" + format_summary(f"Batch {record.local_id}", summary.total,
                                        summary.success, summary.failed, usage))
    return summary
