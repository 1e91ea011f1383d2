# -*- coding: utf-8 -*-

"""
Synchronous runner: one chat completion per row and prompt, applied
immediately. No ledger and no custom ids are involved.
"""

import time
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from tqdm.auto import tqdm

from ..errors import RemoteAPIError, ResultParseError
from ..utils.clients import call_chat_completion
from ..utils.config import Settings
from ..utils.logbook import API_ERROR, PARSE_ERROR, Logbook
from ..utils.prompts import Prompt
from ..utils.workbook import (
    BATCH_ID_COLUMN,
    STATUS_COLUMN,
    SYNC_BATCH_ID,
    RowStatus,
    Sheet,
    Workbook,
    parse_status,
)
from .parse import advance_status, parse_model_content, write_result_columns
from .pricing import calculate_cost
from .summary import UsageAggregator, build_cost_summary_records


@dataclass
class RunSummary:
    rows: int = 0
    calls: int = 0
    success: int = 0
    failed: int = 0
    cost: float = 0.0


def select_sync_rows(sheet: Sheet, max_rows: Optional[int] = None) -> List[int]:
    """Rows without a status, in order, at most `max_rows` of them."""
    rows = []
    for row in sheet.ordinals():
        if max_rows is not None and len(rows) >= max_rows:
            break
        if parse_status(sheet.get(row, STATUS_COLUMN)) == RowStatus.UNSET:
            rows.append(row)
    return rows


def run_prompt_on_row(client, sheet, row, prompt, fields, settings, logbook, usage) -> bool:
    """Send one prompt for one row and write the answer. Failures are logged, not raised."""
    rendered = prompt.render(fields)
    started = time.monotonic()
    try:
        completion = call_chat_completion(client, prompt.model, rendered, max_tokens=settings.max_tokens)
        parsed = parse_model_content(completion.content)
    except RemoteAPIError as e:
        logbook.log_error(row, API_ERROR, f"{prompt.name}: {e}")
        return False
    except ResultParseError as e:
        logbook.log_error(row, PARSE_ERROR, f"{prompt.name}: {e}")
        return False
    elapsed = time.monotonic() - started

    write_result_columns(sheet, row, prompt.name, parsed)
    cost = calculate_cost(completion.model, completion.input_tokens,
                          completion.output_tokens, mode=settings.sync_pricing)
    usage.add(prompt.name, row, completion.input_tokens, completion.output_tokens,
              completion.total_tokens, cost, duration=elapsed)
    logbook.log_execution(row, completion.model, rendered, completion.content,
                          completion.input_tokens, completion.output_tokens,
                          completion.total_tokens, cost)
    return True


def run_prompts(
        client,
        workbook: Workbook,
        prompts: List[Prompt],
        settings: Settings,
        logbook: Logbook,
        max_rows: Optional[int] = None,
    ) -> RunSummary:
    """
    Run every active prompt on rows that have no status yet.

    A failing prompt is logged and the run goes on with the next prompt
    or row. Each row is marked done (status 1, batch id "0") once all its
    prompts were tried, and the Data sheet is saved after every row.

    Args:
        client: OpenAI API client.
        workbook: The workbook.
        prompts (list): Active prompts.
        settings: Run settings (max tokens, pricing table).
        logbook: Record sheets writer.
        max_rows (int): Maximum number of rows to process. None for all.

    Returns:
        RunSummary: Rows, calls, successes, failures and cost.
    """
    sheet = workbook.data
    rows = select_sync_rows(sheet, max_rows)
    summary = RunSummary()
    if not rows or not prompts:
        logging.info("Nothing to run: no unprocessed rows or no active prompts.")
        return summary

    logging.info(f"Running {len(prompts)} prompts on {len(rows)} rows...")
    usage = UsageAggregator()
    started_at = datetime.now()

    for row in tqdm(rows, desc="Rows processed"):
        fields = sheet.row_dict(row)
        for prompt in prompts:
            summary.calls += 1
            if run_prompt_on_row(client, sheet, row, prompt, fields, settings, logbook, usage):
                summary.success += 1
            else:
                summary.failed += 1
        advance_status(sheet, row, RowStatus.DONE_SYNC)
        sheet.set(row, BATCH_ID_COLUMN, SYNC_BATCH_ID)
        sheet.save()
        logbook.save()
        summary.rows += 1

    for record in build_cost_summary_records(usage, started_at, datetime.now()):
        logbook.log_cost_summary(record)
    logbook.save()

    summary.cost = usage.total_cost
    logging.info(f"Processed {summary.rows} rows: {summary.success} calls succeeded, "
                 f"{summary.failed} failed, cost ${summary.cost:.4f}.")
    return summary
