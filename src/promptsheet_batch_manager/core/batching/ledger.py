# -*- coding: utf-8 -*-

"""
Batch ledger: one row of the "Batch Status" sheet per submitted batch.

Entries are appended on submission and never removed. Reconciliation
overwrites the provider-reported fields; result application flips
`processed` once and stamps the local "processed" status.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from .jobs import format_timestamp
from ..utils.workbook import Sheet


LEDGER_HEADERS = [
    "Batch ID", "OpenAI Batch ID", "Status", "Created At", "Last Checked At",
    "Input File ID", "Output File ID", "Error File ID",
    "Total Requests", "Completed", "Failed", "Processed",
    "Results Total", "Results Succeeded", "Results Failed",
]

PROCESSED_STATUS = "processed"
COMPLETED_STATUS = "completed"
PROVIDER_FINAL_STATUSES = ("completed", "failed", "expired", "cancelled")


@dataclass
class BatchResultSummary:
    total: int = 0
    success: int = 0
    failed: int = 0


def _int(value) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return 0


@dataclass
class BatchRecord:
    local_id: str
    provider_id: str
    status: str
    created_at: str = ""
    last_checked_at: str = ""
    input_file_id: str = ""
    output_file_id: str = ""
    error_file_id: str = ""
    total: int = 0
    completed: int = 0
    failed: int = 0
    processed: bool = False
    results: Optional[BatchResultSummary] = None
    row: int = 0

    @classmethod
    def from_provider(cls, local_id: str, batch: dict) -> "BatchRecord":
        """New ledger entry for a batch just created by the provider."""
        counts = batch.get('request_counts') or {}
        return cls(
            local_id=local_id,
            provider_id=batch['id'],
            status=batch.get('status', ''),
            created_at=format_timestamp(batch.get('created_at')),
            input_file_id=batch.get('input_file_id') or '',
            output_file_id=batch.get('output_file_id') or '',
            error_file_id=batch.get('error_file_id') or '',
            total=counts.get('total', 0) or 0,
            completed=counts.get('completed', 0) or 0,
            failed=counts.get('failed', 0) or 0,
        )

    @classmethod
    def from_cells(cls, cells: dict, row: int) -> "BatchRecord":
        results = None
        if cells.get("Results Total", "") != "":
            results = BatchResultSummary(
                total=_int(cells.get("Results Total")),
                success=_int(cells.get("Results Succeeded")),
                failed=_int(cells.get("Results Failed")),
            )
        return cls(
            local_id=cells.get("Batch ID", ""),
            provider_id=cells.get("OpenAI Batch ID", ""),
            status=cells.get("Status", ""),
            created_at=cells.get("Created At", ""),
            last_checked_at=cells.get("Last Checked At", ""),
            input_file_id=cells.get("Input File ID", ""),
            output_file_id=cells.get("Output File ID", ""),
            error_file_id=cells.get("Error File ID", ""),
            total=_int(cells.get("Total Requests")),
            completed=_int(cells.get("Completed")),
            failed=_int(cells.get("Failed")),
            processed=cells.get("Processed", "").strip().lower() == "yes",
            results=results,
            row=row,
        )

    def to_cells(self) -> dict:
        results = self.results
        return {
            "Batch ID": self.local_id,
            "OpenAI Batch ID": self.provider_id,
            "Status": self.status,
            "Created At": self.created_at,
            "Last Checked At": self.last_checked_at,
            "Input File ID": self.input_file_id,
            "Output File ID": self.output_file_id,
            "Error File ID": self.error_file_id,
            "Total Requests": self.total,
            "Completed": self.completed,
            "Failed": self.failed,
            "Processed": "Yes" if self.processed else "No",
            "Results Total": results.total if results else "",
            "Results Succeeded": results.success if results else "",
            "Results Failed": results.failed if results else "",
        }


class BatchLedger:
    """Reads and writes BatchRecords in the Batch Status sheet."""

    def __init__(self, sheet: Sheet):
        self.sheet = sheet
        for header in LEDGER_HEADERS:
            self.sheet.ensure_column(header)

    def records(self) -> List[BatchRecord]:
        """All entries in insertion order."""
        records = []
        for row in self.sheet.ordinals():
            cells = self.sheet.row_dict(row)
            if cells.get("Batch ID", "").strip():
                records.append(BatchRecord.from_cells(cells, row))
        return records

    def unprocessed(self) -> List[BatchRecord]:
        return [record for record in self.records() if not record.processed]

    def get(self, batch_id: str) -> Optional[BatchRecord]:
        """Find an entry by local id or by provider id."""
        for record in self.records():
            if batch_id in (record.local_id, record.provider_id):
                return record
        return None

    def append(self, record: BatchRecord) -> BatchRecord:
        record.row = self.sheet.append_row(record.to_cells())
        logging.debug(f"Ledger entry {record.local_id} added at row {record.row}")
        return record

    def update(self, record: BatchRecord):
        """Write every field of an existing entry back to its row."""
        if not record.row:
            raise ValueError(f"Batch {record.local_id} is not stored in the ledger.")
        for column, value in record.to_cells().items():
            self.sheet.set(record.row, column, value)

    def mark_processed(self, record: BatchRecord, summary: BatchResultSummary):
        """
        Flag the entry as applied and keep the result counts.

        Raises:
            ValueError: If the entry is already processed.
        """
        if record.processed:
            raise ValueError(f"Batch {record.local_id} is already processed.")
        record.processed = True
        record.status = PROCESSED_STATUS
        record.results = summary
        self.update(record)

    def save(self):
        self.sheet.save()
