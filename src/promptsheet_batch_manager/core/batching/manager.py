# -*- coding: utf-8 -*-

import uuid
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple

import openai

from ..errors import NoEligibleRowsError, PreconditionError, RemoteAPIError
from ..utils.config import (
    CONFIG_KEY_COLUMN,
    CONFIG_VALUE_COLUMN,
    Settings,
    write_default_config,
)
from ..utils.locking import workbook_lock
from ..utils.logbook import Logbook
from ..utils.misc import assert_required_path, mask_path, write_jsonl
from ..utils.prompts import PROMPT_HEADERS, Prompt, PromptCatalog
from ..utils.workbook import (
    BATCH_ID_COLUMN,
    BATCH_STATUS_SHEET,
    CONFIG_SHEET,
    DATA_SHEET,
    PROMPTS_SHEET,
    STATUS_COLUMN,
    RowStatus,
    Workbook,
)
from .files import (
    BATCH_ENDPOINT,
    MAX_BATCH_FILE_BYTES,
    MAX_REQUESTS_PER_BATCH,
    build_batch_document,
    build_batch_requests,
    check_batch_limits,
    select_batch_rows,
)
from .jobs import cancel_batch_job, launch_batch_job, log_batch_status
from .ledger import LEDGER_HEADERS, BatchLedger, BatchRecord, BatchResultSummary
from .parse import apply_batch_results
from .pricing import estimate_batch_cost
from .reconcile import (
    ReconcileResult,
    apply_remote_state,
    next_completed_unprocessed,
    reconcile_batches,
)
from .runner import RunSummary, run_prompts


SUBMIT_IN_PROGRESS = "A batch is already being created. Please wait and try again."
CHECK_IN_PROGRESS = "Batch status is already being checked or processed. Please wait and try again."

BATCHES_FOLDER = "batches"


def initialize_workbook(folder: str | Path) -> List[str]:
    """
    Create the template sheets a new workbook needs: Data (with Status
    and Batch ID), Prompts, Config with default settings and an empty
    Batch Status ledger. Existing sheets and values are kept.

    Returns:
        list: Names of the sheets that were created or completed.
    """
    folder = Path(folder)
    folder.mkdir(parents=True, exist_ok=True)
    workbook = Workbook(folder)

    touched = []
    templates = [
        (DATA_SHEET, [STATUS_COLUMN, BATCH_ID_COLUMN]),
        (PROMPTS_SHEET, PROMPT_HEADERS),
        (CONFIG_SHEET, [CONFIG_KEY_COLUMN, CONFIG_VALUE_COLUMN]),
        (BATCH_STATUS_SHEET, LEDGER_HEADERS),
    ]
    for name, headers in templates:
        existed = workbook.sheet_path(name).exists()
        sheet = workbook.sheet(name, headers=headers)
        added = write_default_config(sheet) if name == CONFIG_SHEET else 0
        if not existed or added:
            sheet.save()
            touched.append(name)

    logging.info(f"Workbook ready at {mask_path(folder)}"
                 + (f", created {touched}" if touched else ""))
    return touched


@dataclass
class SubmissionResult:
    local_id: str
    provider_id: str
    n_requests: int
    start: int
    end: int
    remaining: int
    rows: List[int] = field(default_factory=list)


class PromptSheetManager:
    """
    Runs prompts over a workbook, either synchronously or through the
    OpenAI Batch API.

    Batch submission and reconciliation hold a workbook-wide lock and
    re-read the workbook once the lock is acquired.

    Args:
        client: OpenAI or Azure OpenAI client. Only local operations
            (listing the ledger, loading prompts) work without one.
        workbook_folder: Folder holding the workbook sheets.
        settings: Run settings. Read from the Config sheet when omitted.
        endpoint (str): Batch endpoint written in request lines.
        api (str): "OpenAI" or "AzureOpenAI", used to resolve the API key.
        max_requests_per_batch (int): Provider request limit per batch.
        max_batch_file_bytes (int): Provider upload size limit.
    """

    def __init__(
        self,
        client: Optional[openai.OpenAI | openai.AzureOpenAI],
        workbook_folder: str | Path,
        settings: Optional[Settings] = None,
        endpoint: str = BATCH_ENDPOINT,
        api: str = "OpenAI",
        max_requests_per_batch: int = MAX_REQUESTS_PER_BATCH,
        max_batch_file_bytes: int = MAX_BATCH_FILE_BYTES,
    ):
        assert_required_path(workbook_folder, description="Workbook folder")
        self.client = client
        self.workbook = Workbook(workbook_folder)
        self.settings = settings or Settings.from_workbook(self.workbook, api=api)
        self.endpoint = endpoint
        self.max_requests_per_batch = max_requests_per_batch
        self.max_batch_file_bytes = max_batch_file_bytes
        self.logbook = Logbook(self.workbook, debug=self.settings.debug)

    @property
    def folder(self) -> Path:
        return self.workbook.folder

    @property
    def ledger(self) -> BatchLedger:
        return BatchLedger(self.workbook.sheet(BATCH_STATUS_SHEET, headers=LEDGER_HEADERS))

    def _reload(self):
        self.workbook.reload()
        self.logbook = Logbook(self.workbook, debug=self.settings.debug)

    def batch_folder(self, local_id: str) -> Path:
        return self.folder / BATCHES_FOLDER / local_id

    def load_prompts(self) -> List[Prompt]:
        """Active prompts, warning about placeholders that match no data column."""
        catalog = PromptCatalog(self.workbook.sheet(PROMPTS_SHEET), self.settings.default_model)
        for name, fields in catalog.missing_fields(self.workbook.data.headers).items():
            logging.warning(f"Prompt '{name}' uses unknown fields {fields}; they will stay literal.")
        return catalog.active_prompts()

    #=========================================================
    # Synchronous mode
    #=========================================================

    def run(self, max_rows: Optional[int] = None) -> RunSummary:
        """Run active prompts synchronously on up to `max_rows` unprocessed rows."""
        prompts = self.load_prompts()
        if not prompts:
            raise PreconditionError("No active prompts found in the Prompts sheet.")
        return run_prompts(self.client, self.workbook, prompts, self.settings,
                           self.logbook, max_rows=max_rows)

    #=========================================================
    # Batch mode
    #=========================================================

    def build_next_batch(self) -> Tuple[list, list, object]:
        """
        Build the request lines of the next batch without submitting it.

        Returns:
            tuple: (request lines, rows included, BatchRange)

        Raises:
            PreconditionError: If there are no active prompts.
            NoEligibleRowsError: If no row is waiting for a batch.
        """
        prompts = self.load_prompts()
        if not prompts:
            raise PreconditionError("No active prompts found in the Prompts sheet.")

        batch_range = select_batch_rows(self.workbook.data, self.settings.batch_size)
        if batch_range is None:
            raise NoEligibleRowsError("No unprocessed rows found.")

        requests, rows = build_batch_requests(
            self.workbook.data, prompts, batch_range.start, batch_range.end,
            max_tokens=self.settings.max_tokens, endpoint=self.endpoint
        )
        if not requests:
            raise NoEligibleRowsError("No requests to submit for the selected rows.")
        return requests, rows, batch_range

    def estimate_batch_cost(self, models: Optional[List[str]] = None) -> dict:
        """
        Upper-bound Batch API cost of the next batch.

        Args:
            models (list): Price the batch as if sent to each of these
                models. Defaults to the models of the prompts.

        Returns:
            dict: Estimate per model (key None when using prompt models).
        """
        requests, _, _ = self.build_next_batch()
        if not models:
            return {None: estimate_batch_cost(requests)}
        return {model: estimate_batch_cost(requests, openai_model=model) for model in models}

    def create_batch(self) -> SubmissionResult:
        """
        Submit the next batch of unprocessed rows.

        Limits are checked before anything is uploaded. After the provider
        accepts the batch, the ledger entry is saved first and the rows are
        stamped afterwards (status 1, then the batch id).

        Raises:
            OperationInProgressError: If another invocation holds the lock.
            NoEligibleRowsError: If no row is waiting for a batch.
            BatchTooLargeError, BatchDocumentTooLargeError: If the batch
                exceeds provider limits.
            RemoteAPIError: If the upload or batch creation fails.
        """
        with workbook_lock(self.folder, SUBMIT_IN_PROGRESS):
            self._reload()
            requests, rows, batch_range = self.build_next_batch()
            document = build_batch_document(requests)
            check_batch_limits(requests, document, self.max_requests_per_batch,
                               self.max_batch_file_bytes)

            local_id = str(uuid.uuid4())
            input_file = self.batch_folder(local_id) / "input.jsonl"
            input_file.parent.mkdir(parents=True, exist_ok=True)
            write_jsonl(requests, input_file)

            try:
                batch = launch_batch_job(self.client, input_file, endpoint=self.endpoint)
            except openai.APIError as e:
                raise RemoteAPIError(f"Batch submission failed: {e}") from e

            ledger = self.ledger
            record = BatchRecord.from_provider(local_id, batch)
            if not record.total:
                record.total = len(requests)
            ledger.append(record)
            ledger.save()

            data = self.workbook.data
            for row in rows:
                data.set(row, STATUS_COLUMN, int(RowStatus.SUBMITTED))
            for row in rows:
                data.set(row, BATCH_ID_COLUMN, local_id)
            self.workbook.save(DATA_SHEET)

        logging.info(f"Batch {local_id} ({batch['id']}) created with {len(requests)} requests "
                     f"for rows {batch_range.start}-{batch_range.end}.")
        if batch_range.remaining:
            logging.info(f"{batch_range.remaining} unprocessed rows remain for later batches.")
        return SubmissionResult(
            local_id=local_id,
            provider_id=batch['id'],
            n_requests=len(requests),
            start=batch_range.start,
            end=batch_range.end,
            remaining=batch_range.remaining,
            rows=rows,
        )

    def check_status(self) -> ReconcileResult:
        """Refresh the ledger from the provider without applying results."""
        with workbook_lock(self.folder, CHECK_IN_PROGRESS):
            self._reload()
            return reconcile_batches(self.client, self.ledger)

    def process_next(self) -> Tuple[Optional[BatchRecord], Optional[BatchResultSummary]]:
        """
        Reconcile the ledger, then apply the first completed batch that
        has not been applied yet.

        Returns:
            tuple: (batch record, result summary), or (None, None) when no
            batch is ready.
        """
        with workbook_lock(self.folder, CHECK_IN_PROGRESS):
            self._reload()
            ledger = self.ledger
            reconcile_batches(self.client, ledger)
            record = next_completed_unprocessed(ledger)
            if record is None:
                logging.info("No completed batches waiting to be processed.")
                return None, None
            summary = apply_batch_results(self.client, self.workbook, ledger, record,
                                          self.logbook, self.batch_folder(record.local_id))
            return record, summary

    def process_batch(self, batch_id: str) -> BatchResultSummary:
        """
        Apply the results of one batch, by local or provider id.

        Raises:
            PreconditionError: If the batch is unknown or not completed yet.
        """
        with workbook_lock(self.folder, CHECK_IN_PROGRESS):
            self._reload()
            ledger = self.ledger
            record = ledger.get(batch_id)
            if record is None:
                raise PreconditionError(f"Batch '{batch_id}' not found in the ledger.")
            if record.processed:
                return apply_batch_results(self.client, self.workbook, ledger, record, self.logbook)

            reconcile_batches(self.client, ledger)
            record = ledger.get(batch_id)
            if not (record.status == "completed" and record.output_file_id):
                raise PreconditionError(
                    f"Batch '{batch_id}' is not ready to be processed (status: {record.status})."
                )
            return apply_batch_results(self.client, self.workbook, ledger, record,
                                       self.logbook, self.batch_folder(record.local_id))

    def list_batches(self, status: Optional[str] = None) -> List[BatchRecord]:
        """Ledger entries, optionally filtered by status."""
        records = self.ledger.records()
        if status is not None:
            records = [record for record in records if record.status == status]
        return records

    def cancel_batch(self, batch_id: str) -> BatchRecord:
        """
        Ask the provider to cancel a batch and record the new status.
        Rows of the batch keep their status; resetting them is up to the operator.
        """
        with workbook_lock(self.folder, CHECK_IN_PROGRESS):
            self._reload()
            ledger = self.ledger
            record = ledger.get(batch_id)
            if record is None:
                raise PreconditionError(f"Batch '{batch_id}' not found in the ledger.")
            if record.processed:
                raise PreconditionError(f"Batch '{batch_id}' is already processed.")
            try:
                batch = cancel_batch_job(self.client, record.provider_id)
            except openai.APIError as e:
                raise RemoteAPIError(f"Could not cancel batch {record.local_id}: {e}") from e
            apply_remote_state(record, batch)
            ledger.update(record)
            ledger.save()
            log_batch_status(batch)
        logging.warning(f"Rows submitted with batch {record.local_id} keep status "
                        f"{int(RowStatus.SUBMITTED)} and will not be resubmitted automatically.")
        return record

    def __repr__(self):
        return f"PromptSheetManager(workbook={mask_path(self.folder)!r})"
