# -*- coding: utf-8 -*-

"""
Exception hierarchy for PromptSheet Batch Manager.

Only configuration and precondition errors abort an operation. Remote API,
decode and parse errors are recorded against the affected row and the
surrounding loop keeps going. A held workbook lock is reported as a
"try later" notice.
"""


class PromptSheetError(Exception):
    """Base exception for all PromptSheet Batch Manager errors."""
    pass


class ConfigurationError(PromptSheetError):
    """Missing or invalid configuration (API key, batch size, ...)."""
    pass


class PreconditionError(PromptSheetError):
    """A batch submission cannot start. Nothing has been uploaded."""
    pass


class BatchTooLargeError(PreconditionError):
    """Too many requests for a single provider batch."""

    def __init__(self, n_requests: int, limit: int):
        self.n_requests = n_requests
        self.limit = limit
        super().__init__(
            f"Batch has {n_requests:,} requests but the provider accepts at "
            f"most {limit:,}. Reduce BATCH_SIZE or the number of active prompts."
        )


class BatchDocumentTooLargeError(PreconditionError):
    """Serialized batch document exceeds the provider upload limit."""

    def __init__(self, n_bytes: int, limit: int):
        self.n_bytes = n_bytes
        self.limit = limit
        super().__init__(
            f"Batch document is {n_bytes / 1024**2:.1f} MB but the provider "
            f"accepts at most {limit / 1024**2:.0f} MB. Reduce BATCH_SIZE."
        )


class NoEligibleRowsError(PreconditionError):
    """Nothing to submit."""
    pass


class RemoteAPIError(PromptSheetError):
    """Non-success response or error envelope from the completion/batch API."""
    pass


class CorrelationDecodeError(PromptSheetError, ValueError):
    """A custom_id cannot be mapped back to a (row, prompt) pair."""
    pass


class ResultParseError(PromptSheetError, ValueError):
    """Model output is not a JSON object."""
    pass


class OperationInProgressError(PromptSheetError):
    """Another invocation holds the workbook lock."""
    pass
