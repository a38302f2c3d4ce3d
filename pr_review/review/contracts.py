"""Data contracts for a review invocation."""

from __future__ import annotations

from collections.abc import Iterator, Mapping, Sequence
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, Tuple

import pydantic as pd

from pr_review.providers.base import ModelInfo

ModelResolver = Callable[[Optional[str]], Awaitable[ModelInfo]]


class ReviewRequest(pd.BaseModel):
    """Input for one review; immutable for the duration of the review."""

    model_config = pd.ConfigDict(frozen=True, extra="forbid")

    diff_text: str
    working_directory: Path
    selected_agent_ids: Tuple[str, ...] = pd.Field(min_length=1)
    model_selector: Optional[str] = None
    extra_context: str = ""

    @pd.field_validator("selected_agent_ids", mode="before")
    @classmethod
    def _strip_ids(cls, value):
        if isinstance(value, str):
            value = value.split(",")
        return tuple(str(v).strip() for v in value if str(v).strip())

    def agent_ids(self) -> List[str]:
        """Selected ids in request order with repeats collapsed to the first occurrence."""
        return list(dict.fromkeys(self.selected_agent_ids))


class AgentReport(pd.BaseModel):
    model_config = pd.ConfigDict(frozen=True, extra="forbid")

    agent_id: str
    text: str


class ReportCollection(Mapping[str, AgentReport]):
    """Agent reports keyed by agent id, iterated in request order.

    The collection is complete by construction: every requested id has a
    report, so downstream stages never see a partial set.
    """

    def __init__(self, order: Sequence[str], reports: Mapping[str, AgentReport]):
        missing = [agent_id for agent_id in order if agent_id not in reports]
        if missing:
            raise ValueError(f"Missing reports for: {', '.join(missing)}")
        extra = set(reports) - set(order)
        if extra:
            raise ValueError(f"Unrequested reports for: {', '.join(sorted(extra))}")
        self._reports = {agent_id: reports[agent_id] for agent_id in order}

    def __getitem__(self, agent_id: str) -> AgentReport:
        return self._reports[agent_id]

    def __iter__(self) -> Iterator[str]:
        return iter(self._reports)

    def __len__(self) -> int:
        return len(self._reports)

    def __repr__(self) -> str:
        return f"ReportCollection({list(self._reports)})"
