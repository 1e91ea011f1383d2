# -*- coding: utf-8 -*-

"""
Append-only record sheets: Error Log, Execution Log and Cost Summary.
"""

import logging
from datetime import datetime
from typing import Dict, List

from .workbook import (
    COST_SUMMARY_SHEET,
    ERROR_LOG_SHEET,
    EXECUTION_LOG_SHEET,
    Workbook,
)


ERROR_LOG_HEADERS = ["Timestamp", "Row", "Error Type", "Error Message", "Batch ID"]
EXECUTION_LOG_HEADERS = [
    "Timestamp", "Row", "Model", "Prompt Sent", "Response Received",
    "Input Tokens", "Output Tokens", "Total Tokens", "Cost (USD)",
]
COST_SUMMARY_HEADERS = [
    "Date", "Start Time", "End Time", "Duration (sec)", "Prompt Title",
    "No. of Rows Executed", "Total Input Tokens", "Total Output Tokens",
    "Total Tokens", "Total Cost (USD)",
]

# Error types
INVALID_FORMAT = "Invalid Format"
API_ERROR = "API Error"
PARSE_ERROR = "Parse Error"
INVALID_RESPONSE = "Invalid Response"
PROCESSING_ERROR = "Processing Error"


def timestamp() -> str:
    return datetime.now().isoformat(timespec='seconds')


class Logbook:
    """
    Writes error, execution and cost records into the workbook.
    Execution records are only kept when `debug` is on.
    """

    def __init__(self, workbook: Workbook, debug: bool = False):
        self.workbook = workbook
        self.debug = debug
        self._touched = set()
        self.n_errors = 0

    def _append(self, sheet_name: str, headers: List[str], record: Dict[str, object]):
        self.workbook.sheet(sheet_name, headers=headers).append_row(record)
        self._touched.add(sheet_name)

    def log_error(self, row: int, error_type: str, message: str, batch_id: str = ""):
        logging.warning(f"Row {row}: {error_type}: {message}")
        self.n_errors += 1
        self._append(ERROR_LOG_SHEET, ERROR_LOG_HEADERS, {
            "Timestamp": timestamp(),
            "Row": row,
            "Error Type": error_type,
            "Error Message": message,
            "Batch ID": batch_id,
        })

    def log_execution(self, row, model, prompt, response, input_tokens,
                      output_tokens, total_tokens, cost):
        if not self.debug:
            return
        self._append(EXECUTION_LOG_SHEET, EXECUTION_LOG_HEADERS, {
            "Timestamp": timestamp(),
            "Row": row,
            "Model": model,
            "Prompt Sent": prompt,
            "Response Received": response,
            "Input Tokens": input_tokens,
            "Output Tokens": output_tokens,
            "Total Tokens": total_tokens,
            "Cost (USD)": f"{cost:.6f}",
        })

    def log_cost_summary(self, record: Dict[str, object]):
        self._append(COST_SUMMARY_SHEET, COST_SUMMARY_HEADERS, record)

    def save(self):
        """Persist the record sheets written since the last save."""
        self.workbook.save(*sorted(self._touched))
        self._touched.clear()
