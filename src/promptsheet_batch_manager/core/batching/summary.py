# -*- coding: utf-8 -*-

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Set


@dataclass
class PromptUsage:
    """Token usage and cost accumulated for one prompt."""
    prompt_name: str
    rows: Set[int] = field(default_factory=set)
    calls: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0
    cost: float = 0.0
    duration: float = 0.0


class UsageAggregator:
    """Per-prompt running totals, in first-seen order."""

    def __init__(self):
        self._usage: Dict[str, PromptUsage] = {}

    def add(self, prompt_name, row, input_tokens=0, output_tokens=0,
            total_tokens=None, cost=0.0, duration=0.0):
        usage = self._usage.setdefault(prompt_name, PromptUsage(prompt_name))
        usage.rows.add(row)
        usage.calls += 1
        usage.input_tokens += input_tokens
        usage.output_tokens += output_tokens
        usage.total_tokens += total_tokens if total_tokens is not None else input_tokens + output_tokens
        usage.cost += cost
        usage.duration += duration

    def items(self) -> List[PromptUsage]:
        return list(self._usage.values())

    @property
    def total_cost(self) -> float:
        return sum(usage.cost for usage in self._usage.values())

    def __len__(self):
        return len(self._usage)


def build_cost_summary_records(
        usage: UsageAggregator,
        started_at: datetime,
        ended_at: datetime,
        title_suffix: str = "",
        duration: Optional[float] = None,
    ) -> List[dict]:
    """
    One Cost Summary record per prompt.

    Args:
        usage: Aggregated usage.
        started_at: Start of the run.
        ended_at: End of the run.
        title_suffix (str): Appended to the prompt name, e.g. " (Batch)".
        duration (float): Seconds reported for every record. Defaults to
            the API time accumulated per prompt.
    """
    records = []
    for prompt_usage in usage.items():
        seconds = prompt_usage.duration if duration is None else duration
        records.append({
            "Date": started_at.date().isoformat(),
            "Start Time": started_at.strftime("%H:%M:%S"),
            "End Time": ended_at.strftime("%H:%M:%S"),
            "Duration (sec)": f"{seconds:.2f}",
            "Prompt Title": f"{prompt_usage.prompt_name}{title_suffix}",
            "No. of Rows Executed": len(prompt_usage.rows),
            "Total Input Tokens": prompt_usage.input_tokens,
            "Total Output Tokens": prompt_usage.output_tokens,
            "Total Tokens": prompt_usage.total_tokens,
            "Total Cost (USD)": f"{prompt_usage.cost:.6f}",
        })
    return records


def format_summary(title: str, total: int, success: int, failed: int,
                   usage: Optional[UsageAggregator] = None) -> str:
    """Human-readable summary of a run or an applied batch."""
    summary_lines = [
        f"=== {title} ===",
        f"Total     : {total}",
        f"Succeeded : {success} ({(success / total * 100) if total else 0:.2f}%)",
        f"Failed    : {failed} ({(failed / total * 100) if total else 0:.2f}%)",
    ]
    if usage:
        summary_lines += ["", "=== Token Usage and Cost (USD) ==="]
        for prompt_usage in usage.items():
            summary_lines.append(
                f"{prompt_usage.prompt_name:<20} : {len(prompt_usage.rows)} rows, "
                f"{prompt_usage.input_tokens:,} in / {prompt_usage.output_tokens:,} out tokens, "
                f"${prompt_usage.cost:.4f}"
            )
        summary_lines.append(f"Total cost : ${usage.total_cost:.4f}")
    return "\n".join(summary_lines)
