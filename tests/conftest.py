from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta

import pytest
from neurosym_learning.definitions import AgentDefinition, TaskDefinition
from neurosym_learning.types import ExecutionRecord, ToolCall

BASE_TIME = datetime(2026, 1, 15, 12, 0, tzinfo=UTC)


def make_record(
    sequence: list[str],
    *,
    inputs: dict | None = None,
    trace_id: str | None = None,
    task_name: str = "triage",
    offset: int = 0,
) -> ExecutionRecord:
    return ExecutionRecord(
        trace_id=trace_id or f"trace-{offset}-{'-'.join(sequence)}",
        task_name=task_name,
        inputs={} if inputs is None else inputs,
        outputs={},
        tool_calls=[ToolCall(tool_name=t) for t in sequence],
        duration_ms=120.0,
        timestamp=BASE_TIME + timedelta(seconds=offset),
    )


class FakeBackend:
    """In-memory TraceBackend returning canned records per task."""

    name = "fake"

    def __init__(
        self,
        records: dict[str, list[ExecutionRecord]] | None = None,
        *,
        error: Exception | None = None,
    ) -> None:
        self.records = records or {}
        self.error = error
        self.filters = []
        self.closed = False

    def query_spans(self, *, filter, time_range, limit):
        if self.error is not None:
            raise self.error
        self.filters.append(filter)
        return [(filter.task_name, limit)]

    def extract_task_data(self, spans):
        task_name, limit = spans[0]
        return list(self.records.get(task_name, []))[:limit]

    def close(self):
        self.closed = True


@pytest.fixture(autouse=True)
def _reset_neurosym_logger():
    """setup_logging is first-call-wins; give each test a clean logger."""
    logger = logging.getLogger("neurosym")
    saved = list(logger.handlers)
    yield
    logger.handlers = saved


@pytest.fixture
def triage_task() -> TaskDefinition:
    return TaskDefinition(
        name="triage",
        instructions="Fetch open issues and summarize them",
        inputs={"repo": "string"},
        outputs={"summary": "string"},
    )


@pytest.fixture
def agent_definition(triage_task: TaskDefinition) -> AgentDefinition:
    return AgentDefinition(
        name="github-monitor",
        description="Watches repositories",
        tasks={
            "triage": triage_task,
            "label": TaskDefinition(
                name="label",
                instructions="Apply labels to new issues",
                outputs={"labels": "list"},
            ),
            "report": TaskDefinition(
                name="report",
                code="def report(inputs):\n    return {'ok': True}\n",
            ),
        },
        tools=["fetch_issues", "summarize", "apply_labels"],
    )
