"""Tests for the cost model and batch cost estimation."""

import pytest

from promptsheet_batch_manager.core.batching import pricing
from promptsheet_batch_manager.core.batching.pricing import (
    calculate_cost,
    estimate_batch_cost,
    get_model_pricing,
)
from promptsheet_batch_manager.core.utils.clients import build_chat_body


class FakeEncoding:
    """One token per whitespace-separated word."""

    def encode(self, text):
        return text.split()


class TestGetModelPricing:
    def test_exact_standard(self):
        rates, found = get_model_pricing("gpt-4o-mini")
        assert found
        assert rates["input"] == 0.15
        assert rates["output"] == 0.6

    def test_dated_snapshot_uses_prefix(self):
        rates, found = get_model_pricing("gpt-4o-mini-2024-07-18")
        assert found
        assert rates["input"] == 0.15

    def test_longest_prefix_wins(self):
        rates, _ = get_model_pricing("gpt-4o-realtime-preview-2024-12-17")
        assert rates["input"] == 5

    def test_case_insensitive(self):
        assert get_model_pricing("GPT-4o")[0]["input"] == 2.5

    def test_batch_table(self):
        rates, found = get_model_pricing("gpt-4o-mini", mode="batch")
        assert found
        assert rates == {"input": 0.075, "output": 0.3}

    def test_batch_mode_halves_standard_when_missing_from_batch_table(self):
        rates, found = get_model_pricing("gpt-4o-realtime-preview", mode="batch")
        assert found
        assert rates["input"] == pytest.approx(2.5)
        assert rates["output"] == pytest.approx(10)

    def test_unknown_model_falls_back_to_gpt_4o_mini(self):
        rates, found = get_model_pricing("my-azure-deployment")
        assert not found
        assert rates["input"] == 0.15
        rates, found = get_model_pricing("my-azure-deployment", mode="batch")
        assert not found
        assert rates["input"] == 0.075


class TestCalculateCost:
    def test_standard_rates(self):
        assert calculate_cost("gpt-4o-mini", 1000, 500) == pytest.approx(0.00045)

    def test_batch_rates(self):
        assert calculate_cost("gpt-4o-mini", 1000, 500, mode="batch") == pytest.approx(0.000225)

    def test_zero_tokens(self):
        assert calculate_cost("gpt-4o", 0, 0) == 0


class TestEstimateBatchCost:
    @pytest.fixture(autouse=True)
    def word_encoding(self, monkeypatch):
        monkeypatch.setattr(pricing, "get_encoding", lambda model: FakeEncoding())

    def _request(self, model, prompt, max_tokens=100):
        return {"custom_id": "row-2-prompt-0-A", "method": "POST", "url": "/v1/chat/completions",
                "body": build_chat_body(model, prompt, max_tokens=max_tokens)}

    def test_counts_prompt_tokens_and_full_completion_budget(self):
        requests = [self._request("gpt-4o-mini", "one two three"),
                    self._request("gpt-4o-mini", "four five")]
        system_words = len(build_chat_body("m", "")["messages"][0]["content"].split())

        estimate = estimate_batch_cost(requests)
        assert estimate["requests"] == 2
        assert estimate["input_tokens"] == 2 * system_words + 5
        assert estimate["output_tokens"] == 200
        assert estimate["cost"] == pytest.approx(
            calculate_cost("gpt-4o-mini", estimate["input_tokens"], 200, mode="batch")
        )

    def test_model_override(self):
        requests = [self._request("gpt-4o-mini", "one two three")]
        cheap = estimate_batch_cost(requests)
        expensive = estimate_batch_cost(requests, openai_model="gpt-4o")
        assert expensive["cost"] > cheap["cost"]
        assert expensive["input_tokens"] == cheap["input_tokens"]

    def test_max_completion_tokens_override(self):
        requests = [self._request("gpt-4o-mini", "x", max_tokens=100)]
        assert estimate_batch_cost(requests, max_completion_tokens=10)["output_tokens"] == 10

    def test_empty(self):
        assert estimate_batch_cost([]) == {"requests": 0, "input_tokens": 0, "output_tokens": 0, "cost": 0.0}
