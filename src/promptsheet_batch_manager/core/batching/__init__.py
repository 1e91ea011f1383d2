"""
Batch processing operations for PromptSheet Batch Manager.

Submodules:
    correlation: custom_id encoding and decoding
    files:       Row selection, request lines and provider limits
    jobs:        OpenAI Batch API calls (upload, create, list, download, cancel)
    ledger:      Batch Status sheet records
    reconcile:   Ledger refresh from the provider
    parse:       Result application onto the Data sheet
    runner:      Synchronous per-row runner
    pricing:     Cost model and cost estimation
    summary:     Usage aggregation and cost summaries
    manager:     High-level PromptSheetManager

Example Usage:
    import promptsheet_batch_manager as psbm

    custom_id = psbm.batching.correlation.encode_custom_id(2, 0, "Sentiment")
    cost = psbm.batching.pricing.calculate_cost("gpt-4o-mini", 1000, 500)
"""

from . import correlation
from . import files
from . import jobs
from . import ledger
from . import reconcile
from . import parse
from . import runner
from . import pricing
from . import summary
from . import manager

__all__ = [
    'correlation',
    'files',
    'jobs',
    'ledger',
    'reconcile',
    'parse',
    'runner',
    'pricing',
    'summary',
    'manager',
]
