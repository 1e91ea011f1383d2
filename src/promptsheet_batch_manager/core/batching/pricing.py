# -*- coding: utf-8 -*-

import logging
from typing import Dict, List, Optional, Tuple

import tiktoken
from tqdm.auto import tqdm


MODEL2PRICE = {
    # Pricing in USD per 1M tokens for synchronous calls
    # (https://platform.openai.com/docs/pricing)
    'gpt-4.5-preview'              : {'input': 75,   'cached_input': 37.5,  'output': 150},
    'gpt-4o'                       : {'input': 2.5,  'cached_input': 1.25,  'output': 10 },
    'gpt-4o-mini'                  : {'input': 0.15, 'cached_input': 0.075, 'output': 0.6},
    'gpt-4o-mini-audio-preview'    : {'input': 0.15, 'cached_input': 0.075, 'output': 0.6},
    'gpt-4o-audio-preview'         : {'input': 2.5,  'cached_input': 1.25,  'output': 10 },
    'gpt-4o-mini-realtime-preview' : {'input': 0.6,  'cached_input': 0.3,   'output': 2.4},
    'gpt-4o-realtime-preview'      : {'input': 5,    'cached_input': 2.5,   'output': 20 },
    'o3-mini'                      : {'input': 1.1,  'cached_input': 0.55,  'output': 4.4},
    'o1-mini'                      : {'input': 1.1,  'cached_input': 0.55,  'output': 4.4},
    'o1'                           : {'input': 15,   'cached_input': 7.5,   'output': 60 },
}

MODEL2PRICE_BATCH = {
    # Pricing in USD per 1M tokens for Batch API
    'gpt-4o-mini'     : {'input': 0.075, 'output': 0.3},
    'o3-mini'         : {'input': 0.55,  'output': 2.2},
    'o1-mini'         : {'input': 0.55,  'output': 2.2},
    'o1'              : {'input': 7.5,   'output': 30 },
    'gpt-4o'          : {'input': 1.25,  'output': 5  },
    'gpt-4.5-preview' : {'input': 37.5,  'output': 75 },
}

FALLBACK_MODEL = 'gpt-4o-mini'
BATCH_DISCOUNT = 0.5


def _lookup_model(table: Dict[str, dict], model: str) -> Optional[str]:
    """Exact match first, then the longest table key the model name starts with."""
    if model in table:
        return model
    candidates = [name for name in table if model.startswith(name)]
    if candidates:
        return max(candidates, key=len)
    return None


def get_model_pricing(model: str, mode: str = "standard") -> Tuple[dict, bool]:
    """
    Get the per-1M-token rates for a model.

    In batch mode a model missing from the batch table is priced at half
    its standard rates. Unknown models fall back to gpt-4o-mini rates.

    Args:
        model (str): The OpenAI model name (case-insensitive, dated
            snapshots such as gpt-4o-mini-2024-07-18 are accepted).
        mode (str): "standard" or "batch".

    Returns:
        tuple: (rates dict with 'input' and 'output' keys, whether the model was found)
    """
    model = (model or "").lower()
    standard_key = _lookup_model(MODEL2PRICE, model)

    if mode != "batch":
        if standard_key is not None:
            return MODEL2PRICE[standard_key], True
        return MODEL2PRICE[FALLBACK_MODEL], False

    # The most specific match wins, so gpt-4o-realtime-preview is not
    # priced as gpt-4o.
    batch_key = _lookup_model(MODEL2PRICE_BATCH, model)
    if batch_key is not None and (standard_key is None or len(batch_key) >= len(standard_key)):
        return MODEL2PRICE_BATCH[batch_key], True
    if standard_key is not None:
        standard = MODEL2PRICE[standard_key]
        return {name: rate * BATCH_DISCOUNT for name, rate in standard.items()}, True
    return MODEL2PRICE_BATCH[FALLBACK_MODEL], False


def calculate_cost(model: str, input_tokens: int, output_tokens: int, mode: str = "standard") -> float:
    """
    Cost in USD: input_tokens/1e6 * input_rate + output_tokens/1e6 * output_rate.
    """
    rates, found = get_model_pricing(model, mode=mode)
    if not found:
        logging.debug(f"No {mode} pricing for model '{model}', using {FALLBACK_MODEL} rates.")
    return (input_tokens / 1_000_000) * rates['input'] + (output_tokens / 1_000_000) * rates['output']


#=============================================================================
# Cost Estimation
#=============================================================================

def get_encoding(openai_model):
    """
    Get the tiktoken encoding for the specified OpenAI model.

    Args:
        openai_model (str): OpenAI model name.

    Returns:
        tiktoken.core.Encoding: Encoding object for the OpenAI model.
    """
    try:
        encoding = tiktoken.encoding_for_model(openai_model)
    except KeyError:
        if openai_model.startswith(("o1", "o3", "o4", "gpt-4o", "gpt-4.1", "gpt-4.5")):
            encoding = tiktoken.get_encoding("o200k_base")
        else:
            encoding = tiktoken.get_encoding("cl100k_base")
    return encoding


def get_request_tokens(request: dict, encoding) -> int:
    """Count the tokens of every message content in a batch request line."""
    messages = request.get("body", {}).get("messages", [])
    return sum(len(encoding.encode(message.get("content") or "")) for message in messages)


def estimate_batch_cost(
        requests: List[dict],
        openai_model: Optional[str] = None,
        max_completion_tokens: Optional[int] = None,
    ) -> dict:
    """
    Estimate the Batch API cost of a list of request lines.

    The result is an upper bound: every request is assumed to use its
    full completion token budget.

    Args:
        requests (list): Batch request lines as built for submission.
        openai_model (str): Price every request with this model instead of
            the one in its body.
        max_completion_tokens (int): Override the completion budget of
            every request.

    Returns:
        dict: requests, input_tokens, output_tokens and cost (USD).
    """
    encodings = {}
    input_tokens = 0
    output_tokens = 0
    cost = 0.0
    for request in tqdm(requests, desc="Tokenizing requests", disable=len(requests) < 1000):
        body = request.get("body", {})
        model = openai_model or body.get("model", FALLBACK_MODEL)
        if model not in encodings:
            encodings[model] = get_encoding(model)
        request_input = get_request_tokens(request, encodings[model])
        request_output = max_completion_tokens or body.get("max_tokens", 0)
        input_tokens += request_input
        output_tokens += request_output
        cost += calculate_cost(model, request_input, request_output, mode="batch")

    return {
        "requests": len(requests),
        "input_tokens": input_tokens,
        "output_tokens": output_tokens,
        "cost": cost,
    }
