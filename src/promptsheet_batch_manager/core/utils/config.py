# -*- coding: utf-8 -*-

"""
Run settings resolved from the workbook Config sheet, the environment
and built-in defaults, in that order.
"""

import os
import logging
from dataclasses import dataclass
from typing import Dict, Optional

from ..errors import ConfigurationError
from .workbook import CONFIG_SHEET, Sheet, Workbook


CONFIG_KEY_COLUMN = "Key"
CONFIG_VALUE_COLUMN = "Value"

DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_BATCH_SIZE = 2000
DEFAULT_MAX_TOKENS = 256
PRICING_MODES = ("standard", "batch")

# Config sheet key -> environment variable fallback
ENV_FALLBACKS = {
    "DEFAULT_MODEL": "PSBM_DEFAULT_MODEL",
    "DEBUG": "PSBM_DEBUG",
    "BATCH_SIZE": "PSBM_BATCH_SIZE",
    "MAX_TOKENS": "PSBM_MAX_TOKENS",
    "SYNC_PRICING": "PSBM_SYNC_PRICING",
}
API_KEY_ENV = {
    "OpenAI": "OPENAI_API_KEY",
    "AzureOpenAI": "AZURE_OPENAI_API_KEY",
}

DEFAULT_CONFIG_ROWS = [
    ("API_KEY", ""),
    ("DEFAULT_MODEL", DEFAULT_MODEL),
    ("DEBUG", "false"),
    ("BATCH_SIZE", str(DEFAULT_BATCH_SIZE)),
    ("MAX_TOKENS", str(DEFAULT_MAX_TOKENS)),
    ("SYNC_PRICING", "standard"),
]


def parse_bool(value) -> bool:
    """True for true/TRUE/Yes/1 style values."""
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in ("true", "yes", "1", "1.0")


def _parse_positive_int(key: str, value) -> int:
    try:
        number = int(float(str(value).strip()))
    except ValueError:
        raise ConfigurationError(f"{key} must be a positive integer, got '{value}'.")
    if number <= 0:
        raise ConfigurationError(f"{key} must be a positive integer, got '{value}'.")
    return number


def read_config_sheet(sheet: Sheet) -> Dict[str, str]:
    """Key/Value pairs of the Config sheet. Empty keys are skipped."""
    config = {}
    for record in sheet.records():
        key = record.get(CONFIG_KEY_COLUMN, "").strip()
        if key:
            config[key] = record.get(CONFIG_VALUE_COLUMN, "").strip()
    return config


@dataclass
class Settings:
    api_key: Optional[str] = None
    default_model: str = DEFAULT_MODEL
    debug: bool = False
    batch_size: int = DEFAULT_BATCH_SIZE
    max_tokens: int = DEFAULT_MAX_TOKENS
    sync_pricing: str = "standard"

    @classmethod
    def from_mapping(cls, values: Dict[str, str], api: str = "OpenAI") -> "Settings":
        """
        Build settings from Config sheet values, falling back to environment
        variables and then to defaults.

        Raises:
            ConfigurationError: If a value is present but invalid.
        """
        def lookup(key):
            value = values.get(key)
            if value not in (None, ""):
                return value
            env_name = API_KEY_ENV.get(api, "OPENAI_API_KEY") if key == "API_KEY" else ENV_FALLBACKS.get(key)
            if env_name:
                value = os.getenv(env_name)
                if value not in (None, ""):
                    return value
            return None

        settings = cls(api_key=lookup("API_KEY"))

        model = lookup("DEFAULT_MODEL")
        if model:
            settings.default_model = model
        debug = lookup("DEBUG")
        if debug is not None:
            settings.debug = parse_bool(debug)
        batch_size = lookup("BATCH_SIZE")
        if batch_size is not None:
            settings.batch_size = _parse_positive_int("BATCH_SIZE", batch_size)
        max_tokens = lookup("MAX_TOKENS")
        if max_tokens is not None:
            settings.max_tokens = _parse_positive_int("MAX_TOKENS", max_tokens)
        sync_pricing = lookup("SYNC_PRICING")
        if sync_pricing is not None:
            sync_pricing = sync_pricing.lower()
            if sync_pricing not in PRICING_MODES:
                raise ConfigurationError(
                    f"SYNC_PRICING must be one of {PRICING_MODES}, got '{sync_pricing}'."
                )
            settings.sync_pricing = sync_pricing

        return settings

    @classmethod
    def from_workbook(cls, workbook: Workbook, api: str = "OpenAI") -> "Settings":
        sheet = workbook.sheet(CONFIG_SHEET, headers=[CONFIG_KEY_COLUMN, CONFIG_VALUE_COLUMN])
        settings = cls.from_mapping(read_config_sheet(sheet), api=api)
        logging.debug(
            f"Settings: model={settings.default_model}, debug={settings.debug}, "
            f"batch_size={settings.batch_size}, max_tokens={settings.max_tokens}, "
            f"sync_pricing={settings.sync_pricing}"
        )
        return settings

    def validate(self):
        """
        Raises:
            ConfigurationError: If no API key is configured.
        """
        if not self.api_key:
            raise ConfigurationError(
                "No API key found. Set API_KEY in the Config sheet or the "
                "OPENAI_API_KEY (AZURE_OPENAI_API_KEY) environment variable."
            )


def write_default_config(sheet: Sheet) -> int:
    """Append default Key/Value rows that the Config sheet lacks. Returns the number added."""
    existing = read_config_sheet(sheet)
    added = 0
    for key, value in DEFAULT_CONFIG_ROWS:
        if key not in existing:
            sheet.append_row({CONFIG_KEY_COLUMN: key, CONFIG_VALUE_COLUMN: value})
            added += 1
    return added
