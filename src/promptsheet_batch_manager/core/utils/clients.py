# -*- coding: utf-8 -*-

import os
import logging
from dataclasses import dataclass

import openai
from tenacity import (retry, retry_if_exception_type, stop_after_attempt,
                      wait_exponential)

from ..errors import ConfigurationError, RemoteAPIError


SYSTEM_PROMPT = "You are a helpful assistant. Return valid JSON only."
DEFAULT_SEED = 42
AZURE_API_VERSION = "2025-03-01-preview"


retry_on_transient_openai_errors = retry(
    retry=retry_if_exception_type((
        openai.RateLimitError,
        openai.InternalServerError,
        openai.APIConnectionError,
        openai.APITimeoutError,
        openai.UnprocessableEntityError
    )),
    wait=wait_exponential(min=2, max=256),
    stop=stop_after_attempt(10),
    reraise=True
)


#=============================================================================
# Client Creation
#=============================================================================

def create_openai_client(api_key=None):
    """
    Create an OpenAI client for API calls.

    Args:
        api_key (str): The OpenAI API key. If not provided, it will be fetched from the environment variable.

    Raises:
        ConfigurationError: If no key is provided or found.
    """
    if not api_key:
        api_key = os.getenv('OPENAI_API_KEY')
    if not api_key:
        raise ConfigurationError("No OpenAI API key provided or found in environment.")

    client = openai.OpenAI(api_key=api_key)
    logging.debug("OpenAI client created successfully.")
    return client


def create_azure_openai_client(api_key=None, endpoint=None):
    """
    Create an Azure OpenAI client for API calls.

    Args:
        api_key (str): The Azure OpenAI API key. If not provided, it will be fetched from the environment variable.
        endpoint (str): The Azure OpenAI endpoint. If not provided, it will be fetched from the environment variable.

    Raises:
        ConfigurationError: If the key or the endpoint is missing.
    """
    if not api_key:
        api_key = os.getenv('AZURE_OPENAI_API_KEY')
    if not api_key:
        raise ConfigurationError("No Azure OpenAI API key provided or found in environment.")

    if not endpoint:
        endpoint = os.getenv('AZURE_OPENAI_ENDPOINT')
    if not endpoint:
        raise ConfigurationError("No Azure OpenAI endpoint provided or found in environment.")

    client = openai.AzureOpenAI(
        api_key=api_key,
        api_version=AZURE_API_VERSION,
        azure_endpoint=endpoint,
    )
    logging.debug("Azure OpenAI client created successfully.")
    return client


def create_client(api="OpenAI", api_key=None, endpoint=None):
    """Create the client for the configured API ("OpenAI" or "AzureOpenAI")."""
    if api == "AzureOpenAI":
        return create_azure_openai_client(api_key=api_key, endpoint=endpoint)
    return create_openai_client(api_key=api_key)


#=============================================================================
# Chat Completions
#=============================================================================

@dataclass
class CompletionResult:
    """Raw model output and token usage of one chat completion."""
    content: str
    model: str
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0


def build_chat_body(model, prompt, max_tokens=256, seed=DEFAULT_SEED):
    """
    Request body shared by synchronous calls and batch request lines.
    Sampling is deterministic and the model is asked for a JSON object.
    """
    return {
        "model": model,
        "messages": [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ],
        "temperature": 0,
        "max_tokens": max_tokens,
        "seed": seed,
        "response_format": {"type": "json_object"},
    }


@retry_on_transient_openai_errors
def _create_chat_completion(client, body):
    return client.chat.completions.create(**body)


def call_chat_completion(client, model, prompt, max_tokens=256, seed=DEFAULT_SEED):
    """
    Send one prompt to the Chat Completions endpoint.

    Args:
        client: OpenAI API client.
        model (str): Model name or Azure deployment.
        prompt (str): Rendered user prompt.
        max_tokens (int): Completion token limit.
        seed (int): Sampling seed.

    Returns:
        CompletionResult: Message content and token usage.

    Raises:
        RemoteAPIError: If the API call fails or returns no content.
    """
    body = build_chat_body(model, prompt, max_tokens=max_tokens, seed=seed)
    try:
        completion = _create_chat_completion(client, body)
    except openai.APIError as e:
        raise RemoteAPIError(f"Chat completion failed for model {model}: {e}") from e

    if not completion.choices:
        raise RemoteAPIError(f"Chat completion for model {model} returned no choices.")
    content = completion.choices[0].message.content
    if content is None:
        raise RemoteAPIError(f"Chat completion for model {model} returned empty content.")

    usage = completion.usage
    return CompletionResult(
        content=content,
        model=getattr(completion, 'model', None) or model,
        input_tokens=getattr(usage, 'prompt_tokens', 0) or 0,
        output_tokens=getattr(usage, 'completion_tokens', 0) or 0,
        total_tokens=getattr(usage, 'total_tokens', 0) or 0,
    )
