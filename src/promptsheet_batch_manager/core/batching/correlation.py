# -*- coding: utf-8 -*-

"""
Batch request custom ids.

A custom id carries the (row, prompt) identity of a request through the
provider's batch cycle, with no lookup table kept in between:

    row-{row}-prompt-{prompt_ordinal}-{percent-encoded prompt name}

The prompt name is the suffix, so a name containing the delimiter is
recovered by joining every remaining token.
"""

import re
from dataclasses import dataclass
from urllib.parse import quote, unquote

from ..errors import CorrelationDecodeError


DELIMITER = "-"
ROW_TAG = "row"
PROMPT_TAG = "prompt"
NUMBER_PATTERN = re.compile(r"[0-9]+")


@dataclass(frozen=True)
class CorrelationId:
    row: int
    prompt_ordinal: int
    prompt_name: str


def encode_custom_id(row: int, prompt_ordinal: int, prompt_name: str) -> str:
    """
    Build the custom id for one (row, prompt) request.

    Raises:
        ValueError: For negative ordinals.
    """
    if row < 0 or prompt_ordinal < 0:
        raise ValueError(f"Ordinals must be non-negative, got row={row}, prompt={prompt_ordinal}.")
    return DELIMITER.join([
        ROW_TAG, str(row), PROMPT_TAG, str(prompt_ordinal), quote(prompt_name, safe="")
    ])


def decode_custom_id(custom_id: str) -> CorrelationId:
    """
    Recover (row, prompt ordinal, prompt name) from a custom id.

    Raises:
        CorrelationDecodeError: If the id is malformed.
    """
    if not isinstance(custom_id, str):
        raise CorrelationDecodeError(f"Invalid custom_id: {custom_id!r}")

    parts = custom_id.split(DELIMITER)
    if len(parts) < 5:
        raise CorrelationDecodeError(f"Invalid custom_id format: {custom_id}")
    if parts[0] != ROW_TAG or parts[2] != PROMPT_TAG:
        raise CorrelationDecodeError(f"Invalid custom_id format: {custom_id}")
    if not (NUMBER_PATTERN.fullmatch(parts[1]) and NUMBER_PATTERN.fullmatch(parts[3])):
        raise CorrelationDecodeError(f"Invalid row or prompt number in custom_id: {custom_id}")

    try:
        prompt_name = unquote(DELIMITER.join(parts[4:]), errors="strict")
    except UnicodeDecodeError as e:
        raise CorrelationDecodeError(f"Invalid prompt name encoding in custom_id: {custom_id}") from e

    return CorrelationId(row=int(parts[1]), prompt_ordinal=int(parts[3]), prompt_name=prompt_name)
