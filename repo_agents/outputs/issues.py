"""
Issue lifecycle capabilities: create-issue, close-issue, reopen-issue,
convert-to-discussion.
"""

from __future__ import annotations

from typing import Literal

from pydantic import Field

from repo_agents.config_loader import OutputConstraint
from repo_agents.github import GitHubError
from repo_agents.models import RunContext
from repo_agents.outputs import (
    Capability,
    Number,
    OutputHandler,
    PartialCommitError,
    Payload,
    max_label,
    render_usage,
)

MAX_TITLE_LENGTH = 256


class CreateIssuePayload(Payload):
    title: str
    body: str
    labels: list[str] = Field(default_factory=list)
    assignees: list[str] = Field(default_factory=list)


class CloseIssuePayload(Payload):
    issue_number: Number | None = None
    state_reason: Literal["completed", "not_planned"] = "completed"
    comment: str | None = None


class ReopenIssuePayload(Payload):
    issue_number: Number
    comment: str | None = None


class ConvertToDiscussionPayload(Payload):
    issue_number: Number
    category: str = Field(min_length=1)


def check_title(title: str) -> list[str]:
    if not title.strip():
        return ["title is required"]
    if len(title) > MAX_TITLE_LENGTH:
        return [f"title exceeds {MAX_TITLE_LENGTH} characters"]
    return []


class CreateIssueHandler(OutputHandler):
    name = Capability.CREATE_ISSUE
    payload_model = CreateIssuePayload
    verb = "create issue"

    def describe_usage(self, constraint: OutputConstraint) -> str:
        return render_usage(
            title="Create Issue",
            summary="Create a new issue in the repository.",
            capability=self.name.value,
            outputs_dir=self.outputs_dir,
            schema={
                "title": '"string"',
                "body": '"string"',
                "labels": '["string"] (optional)',
                "assignees": '["string"] (optional)',
            },
            fields=[
                "title (required): Clear, descriptive issue title",
                "body (required): Detailed description in markdown",
                "labels (optional): Existing repository labels to apply",
                "assignees (optional): GitHub usernames to assign",
            ],
            constraints=[
                f"Maximum issues: {max_label(constraint)}",
                f"Title must be non-empty and at most {MAX_TITLE_LENGTH} characters",
                "Body should provide sufficient context",
                "Labels must already exist in the repository",
            ],
            example={
                "title": "Add support for custom configurations",
                "body": "## Summary\nUsers need per-project settings.\n\n## Acceptance Criteria\n- Config file is read",
                "labels": ["enhancement"],
            },
        )

    def check(self, payload: CreateIssuePayload, run: RunContext) -> list[str]:
        problems = check_title(payload.title)
        if not payload.body.strip():
            problems.append("body is required")
        if payload.labels:
            existing = self._repo_labels()
            for label in payload.labels:
                if label not in existing:
                    problems.append(f"Label '{label}' does not exist in repository")
        return problems

    def commit(self, payload: CreateIssuePayload, run: RunContext) -> str:
        issue = self.github.create_issue(payload.title, payload.body, payload.labels, payload.assignees)
        return f"created issue #{(issue or {}).get('number', '?')}"


class CloseIssueHandler(OutputHandler):
    name = Capability.CLOSE_ISSUE
    payload_model = CloseIssuePayload
    verb = "close issue"

    def describe_usage(self, constraint: OutputConstraint) -> str:
        return render_usage(
            title="Close Issue",
            summary="Close an issue, by default the current one.",
            capability=self.name.value,
            outputs_dir=self.outputs_dir,
            schema={
                "issue_number": "number (optional)",
                "state_reason": '"completed" | "not_planned"',
                "comment": '"string" (optional)',
            },
            fields=[
                "`issue_number` (optional): Issue to close (default: the current issue)",
                "`state_reason` (optional): \"completed\" or \"not_planned\" (default: \"completed\")",
                "`comment` (optional): Comment posted before closing",
            ],
            constraints=[f"Maximum closures: {max_label(constraint)}"],
            example={"state_reason": "not_planned", "comment": "Closing as a duplicate of #12."},
        )

    def check(self, payload: CloseIssuePayload, run: RunContext) -> list[str]:
        if payload.issue_number is None and run.subject_number is None:
            return ["No issue or PR number available"]
        return []

    def commit(self, payload: CloseIssuePayload, run: RunContext) -> str:
        number = payload.issue_number or run.subject_number
        if payload.comment:
            self.github.add_comment(number, payload.comment)
        self.github.set_issue_state(number, "closed", payload.state_reason)
        return f"closed issue #{number}"


class ReopenIssueHandler(OutputHandler):
    name = Capability.REOPEN_ISSUE
    payload_model = ReopenIssuePayload
    verb = "reopen issue"

    def describe_usage(self, constraint: OutputConstraint) -> str:
        return render_usage(
            title="Reopen Issue",
            summary="Reopen a closed issue or pull request.",
            capability=self.name.value,
            outputs_dir=self.outputs_dir,
            schema={"issue_number": "number", "comment": '"string"'},
            fields=[
                "`issue_number` (required): Issue or PR number to reopen",
                "`comment` (optional): Comment explaining why the issue is being reopened",
            ],
            constraints=[
                f"Maximum reopens: {max_label(constraint)}",
                "Issue/PR must be in closed state",
            ],
            example={"issue_number": 123, "comment": "Reopening because the bug has regressed in v2.0"},
            important="The issue will be reopened immediately.",
        )

    def commit(self, payload: ReopenIssuePayload, run: RunContext) -> str:
        self.github.set_issue_state(payload.issue_number, "open")
        if payload.comment:
            try:
                self.github.add_comment(payload.issue_number, payload.comment)
            except GitHubError as e:
                raise PartialCommitError(
                    f"Reopened #{payload.issue_number} but failed to post comment: {e}"
                ) from e
        return f"reopened #{payload.issue_number}"


class ConvertToDiscussionHandler(OutputHandler):
    name = Capability.CONVERT_TO_DISCUSSION
    payload_model = ConvertToDiscussionPayload
    verb = "convert issue"

    def _categories(self) -> dict[str, str]:
        if "categories" not in self._cache:
            self._cache["categories"] = {
                c["name"]: c["id"] for c in self.github.discussion_categories()
            }
        return self._cache["categories"]

    def dynamic_context(self, run: RunContext) -> str | None:
        names = ", ".join(self._categories()) or "No categories available"
        return (
            "## Available Discussion Categories\n\n"
            "The following discussion categories are available in this repository:\n"
            f"{names}\n\n"
            "**Important**: You must use a category that exists. The category name must match exactly."
        )

    def describe_usage(self, constraint: OutputConstraint) -> str:
        return render_usage(
            title="Convert to Discussion",
            summary="Convert an issue to a discussion.",
            capability=self.name.value,
            outputs_dir=self.outputs_dir,
            schema={"issue_number": "number", "category": '"string"'},
            fields=[
                "`issue_number` (required): Issue number to convert",
                "`category` (required): Discussion category name (e.g., \"Q&A\", \"Ideas\", \"General\")",
            ],
            constraints=[
                f"Maximum conversions: {max_label(constraint)}",
                "Category must exist in the repository",
                "Only works on issues, not pull requests",
                "Original issue will be closed and locked; this cannot be undone",
            ],
            example={"issue_number": 123, "category": "Q&A"},
            important="Check available categories in the context above.",
        )

    def check(self, payload: ConvertToDiscussionPayload, run: RunContext) -> list[str]:
        if payload.category not in self._categories():
            return [f"Category '{payload.category}' not found in repository"]
        return []

    def commit(self, payload: ConvertToDiscussionPayload, run: RunContext) -> str:
        category_id = self._categories()[payload.category]
        url = self.github.convert_to_discussion(payload.issue_number, category_id)
        return f"converted #{payload.issue_number} to discussion {url or ''}".rstrip()
