"""
Core functionality for PromptSheet Batch Manager.

Architecture:
    batching/   - Batch orchestration and the synchronous runner
    utils/      - Workbook storage, prompts, settings, clients
    errors      - Exception hierarchy
"""

from . import errors
from . import batching
from . import utils

from .batching.manager import PromptSheetManager

__all__ = [
    'errors',
    'batching',
    'utils',
    'PromptSheetManager',
]
