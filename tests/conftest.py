from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import pytest

from repo_agents.github import GitHubError
from repo_agents.models import RunContext


class FakeGitHub:
    """In-memory stand-in for GitHubClient. Writes are recorded in `calls`."""

    def __init__(self):
        self.permissions: dict[str, str] = {}
        self.org_members: set[str] = set()
        self.teams: dict[str, set[str]] = {}
        self.labels: list[str] = ["bug", "enhancement", "question"]
        self.subject_labels: dict[int, list[str]] = {}
        self.issues: dict[int, dict[str, Any]] = {}
        self.pulls: dict[int, dict[str, Any]] = {}
        self.branches: dict[str, str] = {"main": "a" * 40}
        self.categories: list[dict[str, str]] = [{"id": "DIC_1", "name": "Q&A"}, {"id": "DIC_2", "name": "Ideas"}]
        self.runs: list[datetime] = []
        self.run_queries: list[str] = []
        self.fail_on: set[str] = set()
        self.calls: list[tuple[str, tuple]] = []

    def _write(self, name: str, *args):
        if name in self.fail_on:
            raise GitHubError(f"gh api {name} failed", stderr="HTTP 500")
        self.calls.append((name, args))

    def called(self, name: str) -> list[tuple]:
        return [args for n, args in self.calls if n == name]

    # -- reads ------------------------------------------------------------

    def permission_level(self, actor: str) -> str:
        return self.permissions.get(actor, "read")

    def is_org_member(self, actor: str) -> bool:
        return actor in self.org_members

    def is_team_member(self, team: str, actor: str) -> bool:
        return actor in self.teams.get(team, set())

    def repo_labels(self) -> list[str]:
        return list(self.labels)

    def issue(self, number: int) -> dict[str, Any]:
        if number not in self.issues:
            raise GitHubError("Not Found", stderr="HTTP 404")
        return self.issues[number]

    def issue_labels(self, number: int) -> list[str]:
        return list(self.subject_labels.get(number, []))

    def pull(self, number: int) -> dict[str, Any]:
        if number not in self.pulls:
            raise GitHubError("Not Found", stderr="HTTP 404")
        return self.pulls[number]

    def branch_exists(self, branch: str) -> bool:
        return branch in self.branches

    def ref_sha(self, ref: str) -> str | None:
        return self.branches.get(ref)

    def discussion_categories(self) -> list[dict[str, str]]:
        return list(self.categories)

    def recent_successful_runs(self, workflow: str, limit: int = 5) -> list[datetime]:
        self.run_queries.append(workflow)
        return self.runs[:limit]

    # -- writes -----------------------------------------------------------

    def add_comment(self, number: int, body: str) -> dict[str, Any]:
        self._write("add_comment", number, body)
        return {"id": len(self.calls)}

    def add_labels(self, number: int, labels: list[str]) -> None:
        self._write("add_labels", number, list(labels))
        current = self.subject_labels.setdefault(number, [])
        current.extend(label for label in labels if label not in current)

    def remove_label(self, number: int, label: str) -> None:
        self._write("remove_label", number, label)
        if label in self.subject_labels.get(number, []):
            self.subject_labels[number].remove(label)

    def create_issue(self, title, body, labels=None, assignees=None) -> dict[str, Any]:
        self._write("create_issue", title, body, list(labels or []), list(assignees or []))
        return {"number": 100 + len(self.calls), "html_url": "https://github.com/octo/repo/issues/100"}

    def create_pull(self, title, body, head, base, draft=False) -> dict[str, Any]:
        self._write("create_pull", title, body, head, base, draft)
        return {"number": 200}

    def set_issue_state(self, number, state, state_reason=None) -> None:
        self._write("set_issue_state", number, state, state_reason)

    def add_reaction(self, content, issue_number=None, comment_id=None) -> None:
        self._write("add_reaction", content, issue_number, comment_id)

    def create_ref(self, branch, sha) -> None:
        self._write("create_ref", branch, sha)
        self.branches[branch] = sha

    def delete_ref(self, branch) -> None:
        self._write("delete_ref", branch)
        self.branches.pop(branch, None)

    def merge_pull(self, number, method="merge", commit_title=None, commit_message=None) -> None:
        self._write("merge_pull", number, method, commit_title, commit_message)

    def create_review(self, number, body, event="APPROVE") -> None:
        self._write("create_review", number, body, event)

    def convert_to_discussion(self, issue_number, category_id) -> str | None:
        self._write("convert_to_discussion", issue_number, category_id)
        return "https://github.com/octo/repo/discussions/1"


@pytest.fixture
def github() -> FakeGitHub:
    return FakeGitHub()


@pytest.fixture
def run_ctx() -> RunContext:
    return RunContext(
        repository="octo/repo",
        actor="alice",
        event_name="issues",
        subject_number=7,
        event_payload={
            "issue": {
                "number": 7,
                "title": "Crash on start",
                "body": "It crashes.",
                "user": {"login": "bob"},
                "labels": [{"name": "bug"}],
            }
        },
        workflow="triage",
        run_id="42",
        agent_name="triage",
    )


@pytest.fixture
def outputs_dir(tmp_path):
    path = tmp_path / "outputs"
    path.mkdir()
    return path


@pytest.fixture
def now() -> datetime:
    return datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)
