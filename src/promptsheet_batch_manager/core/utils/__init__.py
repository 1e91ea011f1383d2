"""
Shared utilities for PromptSheet Batch Manager.

Submodules:
    clients:     API client creation and chat completion calls
    workbook:    Folder-of-sheets storage (Data, Prompts, Config, ...)
    prompts:     Prompt templates and the Prompts sheet catalog
    config:      Run settings from the Config sheet and environment
    logbook:     Error, execution and cost record sheets
    locking:     Workbook-wide lock (internal)
    registry:    Run configuration registry (internal)
    misc:        Internal utilities (internal)
    environment: Environment configuration (internal)
"""

from . import clients
from . import workbook
from . import prompts
from . import config
from . import logbook

__all__ = [
    'clients',
    'workbook',
    'prompts',
    'config',
    'logbook',
]
