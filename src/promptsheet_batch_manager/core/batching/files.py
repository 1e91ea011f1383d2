# -*- coding: utf-8 -*-

"""
Batch input building: row selection, request lines and provider limits.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from ..errors import BatchDocumentTooLargeError, BatchTooLargeError
from ..utils.clients import build_chat_body
from ..utils.misc import to_jsonl
from ..utils.prompts import Prompt
from ..utils.workbook import (
    BATCH_ID_COLUMN,
    STATUS_COLUMN,
    SYNC_BATCH_ID,
    RowStatus,
    Sheet,
    parse_status,
)
from .correlation import encode_custom_id


# OpenAI batch API limits: https://platform.openai.com/docs/guides/batch#rate-limits
MAX_REQUESTS_PER_BATCH = 50_000
MAX_BATCH_FILE_BYTES = 200 * 1024**2

BATCH_ENDPOINT = "/v1/chat/completions"
COMPLETION_WINDOW = "24h"


@dataclass
class BatchRange:
    """Rows chosen for the next batch."""
    start: int
    end: int
    remaining: int
    rows: List[int] = field(default_factory=list)


def has_batch_id(sheet: Sheet, row: int) -> bool:
    """True when the row carries a real batch id (not empty, not the sync marker)."""
    return sheet.get(row, BATCH_ID_COLUMN).strip() not in ("", SYNC_BATCH_ID)


def is_batch_eligible(sheet: Sheet, row: int) -> bool:
    """A row can join a batch when it has no status and no batch id yet."""
    return parse_status(sheet.get(row, STATUS_COLUMN)) == RowStatus.UNSET and not has_batch_id(sheet, row)


def select_batch_rows(sheet: Sheet, batch_size: int) -> Optional[BatchRange]:
    """
    Pick the row range of the next batch.

    Scans rows in order from the first eligible row and extends the range
    until `batch_size` eligible rows are included or the data ends.

    Args:
        sheet: The Data sheet.
        batch_size (int): Maximum number of eligible rows in the range.

    Returns:
        BatchRange or None: The range, the eligible rows in it and the
        number of eligible rows left after it. None if no row is eligible.
    """
    if batch_size <= 0:
        raise ValueError(f"batch_size must be positive, got {batch_size}.")

    rows = []
    remaining = 0
    for row in sheet.ordinals():
        if not is_batch_eligible(sheet, row):
            continue
        if len(rows) < batch_size:
            rows.append(row)
        else:
            remaining += 1

    if not rows:
        return None
    return BatchRange(start=rows[0], end=rows[-1], remaining=remaining, rows=rows)


def build_batch_requests(
        sheet: Sheet,
        prompts: List[Prompt],
        start: int,
        end: int,
        max_tokens: int = 256,
        endpoint: str = BATCH_ENDPOINT,
    ) -> Tuple[List[dict], List[int]]:
    """
    Build one request line per eligible row and active prompt, row-major.

    Rows that already have a status or a batch id are skipped, so calling
    this again over the same range never submits a row twice.

    Args:
        sheet: The Data sheet.
        prompts (list): Active prompts, in ordinal order.
        start (int): First row of the range (inclusive).
        end (int): Last row of the range (inclusive).
        max_tokens (int): Completion token limit per request.
        endpoint (str): Batch endpoint URL placed in every line.

    Returns:
        tuple: (request lines, rows included)
    """
    requests = []
    included_rows = []
    for row in range(start, end + 1):
        if not sheet.has_row(row) or not is_batch_eligible(sheet, row):
            continue
        fields = sheet.row_dict(row)
        for prompt in prompts:
            requests.append({
                "custom_id": encode_custom_id(row, prompt.ordinal, prompt.name),
                "method": "POST",
                "url": endpoint,
                "body": build_chat_body(prompt.model, prompt.render(fields), max_tokens=max_tokens),
            })
        if prompts:
            included_rows.append(row)

    logging.debug(f"Built {len(requests)} requests for {len(included_rows)} rows ({start}-{end}).")
    return requests, included_rows


def build_batch_document(requests: List[dict]) -> str:
    """Serialize request lines as the JSONL document uploaded to the provider."""
    return to_jsonl(requests)


def check_batch_limits(
        requests: List[dict],
        document: str,
        max_requests: int = MAX_REQUESTS_PER_BATCH,
        max_bytes: int = MAX_BATCH_FILE_BYTES,
    ):
    """
    Check provider limits before anything is uploaded.

    Raises:
        BatchTooLargeError: If there are more than `max_requests` requests.
        BatchDocumentTooLargeError: If the document exceeds `max_bytes`.
    """
    if len(requests) > max_requests:
        raise BatchTooLargeError(len(requests), max_requests)
    n_bytes = len(document.encode('utf-8'))
    if n_bytes > max_bytes:
        raise BatchDocumentTooLargeError(n_bytes, max_bytes)
