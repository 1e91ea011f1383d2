# -*- coding: utf-8 -*-
"""
This module wraps the OpenAI Batch API calls used by the batch workflow:
uploading input documents, creating, listing, retrieving and cancelling
batch jobs, and downloading result files. Every call retries transient
errors and returns plain dictionaries.
"""


import os
import logging
from datetime import datetime
from pathlib import Path
from typing import List, Optional

import openai

from ..utils.clients import retry_on_transient_openai_errors
from ..utils.misc import mask_path
from .files import BATCH_ENDPOINT, COMPLETION_WINDOW


#=============================================================================
# Batch Job Launching
#=============================================================================

@retry_on_transient_openai_errors
def upload_batch_document(
        client: openai.OpenAI | openai.AzureOpenAI,
        input_file: str | Path,
    ) -> str:
    """
    Upload a JSONL input document for batch processing.

    Args:
        client: OpenAI API client.
        input_file (str): Path to the input JSONL file.

    Returns:
        str: The uploaded file ID.
    """
    if not os.path.exists(input_file):
        raise FileNotFoundError(f"Input file not found: {input_file}")
    if os.path.getsize(input_file) == 0:
        raise ValueError(f"Input file is empty: {input_file}")

    logging.info(f"Uploading batch input {mask_path(input_file)}...")
    with open(input_file, 'rb') as f:
        batch_file = client.files.create(file=f, purpose='batch')
    logging.info(f"Uploaded input file with ID: {batch_file.id}")
    return batch_file.id


@retry_on_transient_openai_errors
def create_batch_job(
        client: openai.OpenAI | openai.AzureOpenAI,
        input_file_id: str,
        endpoint: str = BATCH_ENDPOINT,
    ) -> dict:
    """
    Create a batch job from an uploaded input file.

    Returns:
        dict: The batch job metadata.
    """
    batch_job = client.batches.create(
        input_file_id=input_file_id,
        endpoint=endpoint,
        completion_window=COMPLETION_WINDOW
    )
    batch = batch_job.model_dump()
    logging.info(f"Batch job created with ID: {batch['id']}")
    return batch


def launch_batch_job(
        client: openai.OpenAI | openai.AzureOpenAI,
        input_file: str | Path,
        endpoint: str = BATCH_ENDPOINT,
    ) -> dict:
    """
    Upload an input document and create a batch job for it.

    Args:
        client: OpenAI API client.
        input_file (str): Path to the input JSONL file.
        endpoint (str): API endpoint for the batch job.

    Returns:
        dict: The batch job metadata.
    """
    input_file_id = upload_batch_document(client, input_file)
    return create_batch_job(client, input_file_id, endpoint=endpoint)


#=============================================================================
# Batch Status Checking
#=============================================================================

@retry_on_transient_openai_errors
def retrieve_batch_job(client, batch_id: str) -> dict:
    """Fetch the full metadata of a batch job."""
    logging.debug(f"Retrieving batch job {batch_id}")
    return client.batches.retrieve(batch_id).model_dump()


@retry_on_transient_openai_errors
def list_batch_jobs(client, status: Optional[str] = None) -> List[dict]:
    """
    List batch jobs known to the provider.

    Args:
        client: OpenAI API client.
        status (str): Filter jobs by status (e.g., "completed", "failed", etc.).
            If None, list all jobs.

    Returns:
        list: A list of dictionaries containing metadata for each job matching the status.
    """
    jobs_metadata = []
    for job in client.batches.list(limit=100):
        job = job.model_dump()
        if status is None or job['status'] == status:
            jobs_metadata.append(job)
    logging.debug(f"Provider listed {len(jobs_metadata)} batch jobs.")
    return jobs_metadata


def log_batch_status(batch: dict):
    """Log a one-line description of a batch job's progress."""
    batch_id = batch['id']
    status = batch['status']
    counts = batch.get('request_counts') or {}
    if status == "failed":
        logging.error(f"Batch {batch_id} failed with error: {batch.get('errors')}")
    elif status == "in_progress":
        completed = counts.get('completed', 0)
        total = counts.get('total', 0)
        percentage = completed / total * 100 if total else 0
        logging.info(f"Batch {batch_id} is in progress, {completed} requests completed ({percentage:.2f}%)")
    elif status == "finalizing":
        logging.info(f"Batch {batch_id} is finalizing, waiting for the output file ID")
    elif status == "completed":
        logging.info(f"Batch {batch_id} has completed with output file ID: {batch.get('output_file_id')}")
    else:
        logging.info(f"Batch {batch_id} is in status: {status}")


#==============================================================================
# Batch Result Downloading
#==============================================================================

@retry_on_transient_openai_errors
def download_file_content(client, file_id: str) -> str:
    """Download a file (batch output or error document) as text."""
    logging.info(f"Downloading file {file_id}...")
    content = client.files.content(file_id).content
    if isinstance(content, bytes):
        content = content.decode('utf-8')
    return content


def save_file_content(content: str, path: str | Path):
    """Keep a local copy of a downloaded document."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w', encoding='utf-8') as f:
        f.write(content)
    logging.info(f"Saved {mask_path(path)}")


#==============================================================================
# Batch Job Management
#==============================================================================

@retry_on_transient_openai_errors
def cancel_batch_job(client, batch_id: str) -> dict:
    """
    Cancel a batch job using its ID.

    Returns:
        dict: The batch job metadata after the cancel request.
    """
    logging.info(f"Cancelling batch job {batch_id}...")
    batch = client.batches.cancel(batch_id).model_dump()
    logging.info(f"Batch job {batch_id} is {batch['status']}.")
    return batch


def format_timestamp(value) -> str:
    """ISO timestamp for an epoch value from the API (empty when missing)."""
    if not value:
        return ""
    return datetime.fromtimestamp(value).isoformat(timespec='seconds')
