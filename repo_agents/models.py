"""
Core run-time types shared by every pipeline stage.
"""

from __future__ import annotations

import json
import os
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from repo_agents.ledger import LedgerEntry


class EventKind(str, Enum):
    ISSUE = "issue"
    PULL_REQUEST = "pull_request"
    DISCUSSION = "discussion"
    OTHER = "other"


_PR_EVENTS = {"pull_request", "pull_request_target", "pull_request_review", "pull_request_review_comment"}
_DISCUSSION_EVENTS = {"discussion", "discussion_comment"}


class RunContext(BaseModel):
    """Identity of one pipeline run. Built once, never mutated."""
    model_config = ConfigDict(frozen=True)

    repository: str
    actor: str
    event_name: str
    subject_number: int | None = None
    event_payload: dict[str, Any] = Field(default_factory=dict)
    workflow: str = ""
    workflow_ref: str = ""
    run_id: str = ""
    server_url: str = "https://github.com"
    agent_name: str = ""

    @property
    def owner(self) -> str:
        return self.repository.split("/", 1)[0]

    @property
    def repo_name(self) -> str:
        return self.repository.split("/", 1)[-1]

    @property
    def event_kind(self) -> EventKind:
        if self.event_name in _PR_EVENTS:
            return EventKind.PULL_REQUEST
        if self.event_name in _DISCUSSION_EVENTS:
            return EventKind.DISCUSSION
        if self.event_name in ("issues", "issue_comment"):
            issue = self.event_payload.get("issue") or {}
            # comments on PRs arrive as issue_comment with a pull_request link
            if "pull_request" in issue:
                return EventKind.PULL_REQUEST
            return EventKind.ISSUE
        return EventKind.OTHER

    @property
    def workflow_file(self) -> str:
        """`triage.yml` out of `octo/repo/.github/workflows/triage.yml@refs/heads/main`."""
        path = self.workflow_ref.split("@", 1)[0]
        return path.rsplit("/", 1)[-1]

    @property
    def run_url(self) -> str | None:
        if not self.run_id:
            return None
        return f"{self.server_url}/{self.repository}/actions/runs/{self.run_id}"

    @classmethod
    def from_env(cls, env: dict[str, str] | None = None, agent_name: str = "") -> "RunContext":
        """Build a RunContext from the GitHub Actions environment."""
        env = os.environ if env is None else env
        payload: dict[str, Any] = {}
        event_path = env.get("GITHUB_EVENT_PATH")
        if event_path and Path(event_path).exists():
            payload = json.loads(Path(event_path).read_text(encoding="utf-8"))

        number = None
        for key in ("issue", "pull_request"):
            subject = payload.get(key)
            if isinstance(subject, dict) and subject.get("number"):
                number = int(subject["number"])
                break

        return cls(
            repository=env.get("GITHUB_REPOSITORY", ""),
            actor=env.get("GITHUB_ACTOR", ""),
            event_name=env.get("GITHUB_EVENT_NAME", ""),
            subject_number=number,
            event_payload=payload,
            workflow=env.get("GITHUB_WORKFLOW", ""),
            workflow_ref=env.get("GITHUB_WORKFLOW_REF", ""),
            run_id=env.get("GITHUB_RUN_ID", ""),
            server_url=env.get("GITHUB_SERVER_URL", "https://github.com"),
            agent_name=agent_name,
        )


class OutputArtifact(BaseModel):
    """One declared side effect, read from `<capability>[-<ordinal>].json`."""
    capability: str
    ordinal: int | None = None
    path: Path
    payload: Any = None
    parse_error: str | None = None

    @property
    def ref(self) -> str:
        return self.path.name


StageStatus = Literal["success", "failure", "skipped"]


class ExecutionMetrics(BaseModel):
    cost_usd: float | None = None
    duration_ms: int | None = None
    turns: int | None = None


class AuditRecord(BaseModel):
    """The single status record produced at the end of every run."""
    repository: str
    run_id: str = ""
    agent_name: str = ""
    timestamp: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    stages: dict[str, StageStatus] = Field(default_factory=dict)
    gate_reasons: list[str] = Field(default_factory=list)
    errors: list[LedgerEntry] = Field(default_factory=list)
    committed: dict[str, int] = Field(default_factory=dict)
    metrics: ExecutionMetrics | None = None
    status: Literal["success", "failed"] = "success"
    ticket_url: str | None = None

    def to_json(self) -> str:
        return self.model_dump_json(indent=2)
