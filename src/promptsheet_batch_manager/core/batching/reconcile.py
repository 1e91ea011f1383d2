# -*- coding: utf-8 -*-

"""
Status reconciliation between the local ledger and the provider.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from .jobs import list_batch_jobs, log_batch_status, retrieve_batch_job
from .ledger import COMPLETED_STATUS, BatchLedger, BatchRecord


@dataclass
class ReconcileResult:
    checked: int = 0
    updated: int = 0
    missing: List[str] = field(default_factory=list)


def _counts(batch: dict):
    counts = batch.get('request_counts') or {}
    return (
        counts.get('total', 0) or 0,
        counts.get('completed', 0) or 0,
        counts.get('failed', 0) or 0,
    )


def needs_refresh(record: BatchRecord, remote: dict) -> bool:
    """
    True when the provider listing disagrees with the entry: another
    status, other counters, or an output file the entry does not have yet.
    """
    if remote.get('status') != record.status:
        return True
    if _counts(remote) != (record.total, record.completed, record.failed):
        return True
    return bool(remote.get('output_file_id')) and not record.output_file_id


def apply_remote_state(record: BatchRecord, batch: dict, checked_at: Optional[str] = None):
    """
    Overwrite the provider-reported fields of an entry. File ids are only
    replaced when the provider furnishes one. `processed` is never touched.
    """
    record.status = batch.get('status', record.status)
    record.total, record.completed, record.failed = _counts(batch)
    record.last_checked_at = checked_at or datetime.now().isoformat(timespec='seconds')
    if batch.get('output_file_id'):
        record.output_file_id = batch['output_file_id']
    if batch.get('error_file_id'):
        record.error_file_id = batch['error_file_id']
    if batch.get('input_file_id') and not record.input_file_id:
        record.input_file_id = batch['input_file_id']


def reconcile_batches(client, ledger: BatchLedger) -> ReconcileResult:
    """
    Refresh every unprocessed ledger entry from the provider.

    The provider listing is fetched once. Entries it disagrees with are
    refreshed from the full batch detail. Entries missing from the listing
    are left as they are, since the listing may lag behind.

    Args:
        client: OpenAI API client.
        ledger: The batch ledger. It is saved when an entry changed.

    Returns:
        ReconcileResult: Counts of checked and updated entries, and the
        local ids the provider did not list.
    """
    result = ReconcileResult()
    pending = ledger.unprocessed()
    if not pending:
        logging.info("No unprocessed batches to check.")
        return result

    remote_batches = {batch['id']: batch for batch in list_batch_jobs(client)}
    checked_at = datetime.now().isoformat(timespec='seconds')

    for record in pending:
        result.checked += 1
        remote = remote_batches.get(record.provider_id)
        if remote is None:
            logging.warning(f"Batch {record.local_id} ({record.provider_id}) not found in provider listing.")
            result.missing.append(record.local_id)
            continue
        if not needs_refresh(record, remote):
            logging.debug(f"Batch {record.local_id} unchanged ({record.status}).")
            continue

        detail = retrieve_batch_job(client, record.provider_id)
        apply_remote_state(record, detail, checked_at)
        ledger.update(record)
        log_batch_status(detail)
        result.updated += 1

    if result.updated:
        ledger.save()
    logging.info(f"Checked {result.checked} batches, updated {result.updated}.")
    return result


def next_completed_unprocessed(ledger: BatchLedger) -> Optional[BatchRecord]:
    """First completed entry with an output file and no results applied yet, in ledger order."""
    for record in ledger.records():
        if record.status == COMPLETED_STATUS and record.output_file_id and not record.processed:
            return record
    return None
