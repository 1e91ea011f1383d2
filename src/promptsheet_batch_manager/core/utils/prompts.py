# -*- coding: utf-8 -*-

"""
Prompt templates and the Prompts sheet catalog.
"""

import re
import logging
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional

from ..errors import ConfigurationError
from .workbook import Sheet, to_cell


PROMPT_NAME_COLUMN = "Prompt Name"
PROMPT_TEXT_COLUMN = "Prompt Text"
PROMPT_MODEL_COLUMN = "Model"
PROMPT_ACTIVE_COLUMN = "Active"
PROMPT_HEADERS = [PROMPT_NAME_COLUMN, PROMPT_TEXT_COLUMN, PROMPT_MODEL_COLUMN, PROMPT_ACTIVE_COLUMN]

PLACEHOLDER_PATTERN = re.compile(r"\{\{([^}]+)\}\}")

_TRUTHY = {"1", "true", "yes", "y"}


def render_template(template: str, fields: Mapping[str, object]) -> str:
    """
    Substitute `{{name}}` placeholders with row field values.

    The placeholder name is trimmed and must match a field name exactly.
    Placeholders without a matching field are left as literal text.
    Substituted values are never expanded again.

    Args:
        template: Prompt text with `{{field}}` placeholders.
        fields: Mapping of field name to value.

    Returns:
        str: The rendered prompt.
    """
    def _substitute(match):
        name = match.group(1).strip()
        if name in fields:
            return to_cell(fields[name])
        return match.group(0)

    return PLACEHOLDER_PATTERN.sub(_substitute, template or "")


def find_placeholders(template: str) -> List[str]:
    """Trimmed placeholder names in order of appearance."""
    return [name.strip() for name in PLACEHOLDER_PATTERN.findall(template or "")]


def is_active(value) -> bool:
    text = str(value).strip().lower() if value is not None else ""
    if text in _TRUTHY:
        return True
    try:
        return float(text) == 1
    except ValueError:
        return False


@dataclass
class Prompt:
    """A named prompt template. `ordinal` is its index in the active list."""
    name: str
    text: str
    model: str
    ordinal: int = 0

    def render(self, fields: Mapping[str, object]) -> str:
        return render_template(self.text, fields)


class PromptCatalog:
    """
    Active prompts from the Prompts sheet.

    The sheet needs "Prompt Name" and "Prompt Text" columns. "Model" is
    optional and falls back to the default model. When the "Active" column
    is missing it is added and every existing prompt is switched on.
    """

    def __init__(self, sheet: Sheet, default_model: str):
        self.sheet = sheet
        self.default_model = default_model
        self._prompts: List[Prompt] = []
        self._load()

    def _load(self):
        if self.sheet.column_index(PROMPT_ACTIVE_COLUMN) is None:
            self.sheet.ensure_column(PROMPT_ACTIVE_COLUMN)
            for row in self.sheet.ordinals():
                self.sheet.set(row, PROMPT_ACTIVE_COLUMN, 1)
            self.sheet.save()
            logging.info(f"Added '{PROMPT_ACTIVE_COLUMN}' column to the Prompts sheet; all prompts set active.")

        prompts: List[Prompt] = []
        seen: Dict[str, int] = {}
        for row in self.sheet.ordinals():
            name = self.sheet.get(row, PROMPT_NAME_COLUMN).strip()
            text = self.sheet.get(row, PROMPT_TEXT_COLUMN)
            if not name or not text.strip():
                continue
            if not is_active(self.sheet.get(row, PROMPT_ACTIVE_COLUMN)):
                continue
            if name in seen:
                raise ConfigurationError(
                    f"Prompt name '{name}' is used by more than one active prompt "
                    f"(rows {seen[name]} and {row}). Active prompt names must be unique."
                )
            seen[name] = row
            model = self.sheet.get(row, PROMPT_MODEL_COLUMN).strip() or self.default_model
            prompts.append(Prompt(name=name, text=text, model=model, ordinal=len(prompts)))

        self._prompts = prompts
        logging.debug(f"Loaded {len(prompts)} active prompts: {[p.name for p in prompts]}")

    def active_prompts(self) -> List[Prompt]:
        return list(self._prompts)

    def get(self, name: str) -> Optional[Prompt]:
        for prompt in self._prompts:
            if prompt.name == name:
                return prompt
        return None

    def missing_fields(self, headers: List[str]) -> Dict[str, List[str]]:
        """Placeholders of each active prompt that match no data column."""
        missing = {}
        for prompt in self._prompts:
            unknown = [name for name in find_placeholders(prompt.text) if name not in headers]
            if unknown:
                missing[prompt.name] = unknown
        return missing

    def __len__(self):
        return len(self._prompts)
