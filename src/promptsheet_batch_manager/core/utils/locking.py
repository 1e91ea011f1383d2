# -*- coding: utf-8 -*-

"""
Workbook-wide mutual exclusion for batch submission and reconciliation.
"""

import logging
from contextlib import contextmanager
from pathlib import Path

from filelock import FileLock, Timeout

from ..errors import OperationInProgressError


LOCK_FILENAME = ".psbm.lock"
LOCK_TIMEOUT = 1  # seconds; fail fast instead of queuing


def lock_path(folder) -> Path:
    return Path(folder) / LOCK_FILENAME


@contextmanager
def workbook_lock(folder, message, timeout=LOCK_TIMEOUT):
    """
    Hold the workbook lock for the duration of the block.

    Args:
        folder: Workbook folder.
        message (str): Notice shown when another invocation holds the lock.
        timeout (float): Seconds to wait before giving up.

    Raises:
        OperationInProgressError: If the lock is not acquired in time.
    """
    lock = FileLock(str(lock_path(folder)), timeout=timeout)
    try:
        lock.acquire()
    except Timeout as e:
        raise OperationInProgressError(message) from e
    logging.debug(f"Acquired workbook lock {lock.lock_file}")
    try:
        yield
    finally:
        lock.release()
        logging.debug(f"Released workbook lock {lock.lock_file}")
