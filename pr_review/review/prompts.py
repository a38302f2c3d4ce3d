"""User prompts sent to review agents and to the synthesizer."""

from __future__ import annotations

from typing import Mapping

from pr_review.review.contracts import AgentReport


def _diff_block(diff_text: str) -> str:
    return f"```diff\n{diff_text}\n```"


def build_agent_prompt(diff_text: str, extra_context: str = "") -> str:
    """Prompt for one review agent: the fenced diff plus optional reviewer context."""
    prompt = f"Here is the git diff to review:\n\n{_diff_block(diff_text)}"
    if extra_context:
        prompt += f"\n\nAdditional context from the reviewer:\n{extra_context}"
    return prompt


def build_synthesis_prompt(diff_text: str, reports: Mapping[str, AgentReport]) -> str:
    """Prompt for the synthesizer.

    Reports are emitted in the iteration order of ``reports`` and each
    section is headed by its agent id.
    """
    parts = [
        f"Here is the git diff:\n\n{_diff_block(diff_text)}\n\n",
        "Here are the individual review reports:\n\n",
    ]
    for agent_id, report in reports.items():
        parts.append(f"## {agent_id}\n\n{report.text}\n\n---\n\n")
    return "".join(parts)
