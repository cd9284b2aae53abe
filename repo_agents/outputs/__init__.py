"""
repo-agents Output Handlers

Each capability is:
  - A payload schema (pydantic)
  - An optional dynamic context fragment for the agent
  - A usage brief telling the agent how to declare the side effect
  - Validation rules and a single commit action

Handlers never decide atomicity. The BatchValidator drives them in two
phases: every artifact is checked, then (only if nothing failed) every
artifact is committed in order.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from enum import Enum
from typing import TYPE_CHECKING, Annotated, Any, ClassVar

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, ValidationError

from repo_agents.config_loader import OutputConstraint
from repo_agents.github import GitHubClient
from repo_agents.models import OutputArtifact, RunContext

if TYPE_CHECKING:
    from repo_agents.validator import BatchResult


class PartialCommitError(Exception):
    """The main write landed but a follow-up write did not."""


class Capability(str, Enum):
    ADD_COMMENT = "add-comment"
    ADD_LABEL = "add-label"
    REMOVE_LABEL = "remove-label"
    CREATE_ISSUE = "create-issue"
    CREATE_PR = "create-pr"
    UPDATE_FILE = "update-file"
    CLOSE_ISSUE = "close-issue"
    CLOSE_PR = "close-pr"
    REOPEN_ISSUE = "reopen-issue"
    ADD_REACTION = "add-reaction"
    CREATE_BRANCH = "create-branch"
    DELETE_BRANCH = "delete-branch"
    MERGE_PR = "merge-pr"
    APPROVE_PR = "approve-pr"
    CONVERT_TO_DISCUSSION = "convert-to-discussion"


# ---------------------------------------------------------------------------
# Payload helpers
# ---------------------------------------------------------------------------

def _reject_bool(value: Any) -> Any:
    if isinstance(value, bool):
        raise ValueError("must be a number")
    return value


Number = Annotated[int, BeforeValidator(_reject_bool), Field(gt=0)]


class Payload(BaseModel):
    """Base for artifact payload schemas. Unknown keys are ignored."""
    model_config = ConfigDict(extra="ignore")


_NUMBER_ERRORS = ("int_parsing", "int_type", "int_from_float")


def schema_errors(exc: ValidationError) -> list[str]:
    """Turn a pydantic ValidationError into ledger-friendly messages."""
    messages = []
    for err in exc.errors():
        field = ".".join(str(p) for p in err["loc"])
        msg = err["msg"].removeprefix("Value error, ")
        if not field:
            messages.append(msg)
        elif err["type"] == "missing":
            messages.append(f"{field} is required")
        elif err["type"] in _NUMBER_ERRORS or "must be a number" in msg:
            messages.append(f"{field} must be a number")
        else:
            messages.append(f"{field}: {msg}")
    return messages


def render_usage(
    title: str,
    summary: str,
    capability: str,
    outputs_dir: str,
    schema: dict[str, str],
    fields: list[str],
    constraints: list[str],
    example: dict[str, Any],
    important: str = "",
) -> str:
    """Common layout of the operation brief handed to the agent."""
    schema_lines = ",\n".join(f'  "{k}": {v}' for k, v in schema.items())
    lines = [
        f"## Skill: {title}",
        "",
        summary,
        "",
        f"**File to create**: `{outputs_dir}/{capability}.json`",
        "",
        f"For multiple operations, use numbered suffixes: `{capability}-1.json`, `{capability}-2.json`, etc.",
        "",
        "**JSON Schema**:",
        "```json",
        "{",
        schema_lines,
        "}",
        "```",
        "",
        "**Fields**:",
        *[f"- {f}" for f in fields],
        "",
        "**Constraints**:",
        *[f"- {c}" for c in constraints],
        "",
        "**Example**:",
        "```json",
        json.dumps(example, indent=2),
        "```",
        "",
        f"**Important**: Use the Write tool to create this file.{' ' + important if important else ''}",
    ]
    return "\n".join(lines)


def max_label(constraint: OutputConstraint) -> str:
    return "unlimited" if constraint.max is None else str(constraint.max)


# ---------------------------------------------------------------------------
# Handler base
# ---------------------------------------------------------------------------

class OutputHandler(ABC):
    """
    Base class for all capability handlers.

    Subclasses define:
      - name: Capability
      - payload_model: pydantic schema for one artifact
      - describe_usage() - the brief shown to the agent
      - check() - capability rules beyond the schema (phase 1)
      - commit() - exactly one side effect per artifact (phase 2)
    """

    name: ClassVar[Capability]
    payload_model: ClassVar[type[Payload]] = Payload
    verb: ClassVar[str] = "commit artifact"
    artifact_driven: ClassVar[bool] = True

    def __init__(self, github: GitHubClient, outputs_dir: str = "/tmp/outputs"):
        self.github = github
        self.outputs_dir = outputs_dir
        self._cache: dict[str, Any] = {}

    def dynamic_context(self, run: RunContext) -> str | None:
        """Extra context the agent needs before declaring this capability."""
        return None

    @abstractmethod
    def describe_usage(self, constraint: OutputConstraint) -> str:
        ...

    def begin_batch(self, run: RunContext) -> None:
        """Drop lookups cached by a previous batch."""
        self._cache.clear()

    def parse(self, artifact: OutputArtifact) -> tuple[Payload | None, list[str]]:
        if artifact.parse_error is not None or not isinstance(artifact.payload, dict):
            return None, ["Invalid JSON format"]
        try:
            return self.payload_model.model_validate(artifact.payload), []
        except ValidationError as e:
            return None, schema_errors(e)

    def check(self, payload: Any, run: RunContext) -> list[str]:
        return []

    @abstractmethod
    def commit(self, payload: Any, run: RunContext) -> str:
        """Perform the side effect. Raises GitHubError on failure."""
        ...

    def validate_and_commit(
        self, constraint: OutputConstraint, run: RunContext, artifacts: list[OutputArtifact]
    ) -> "BatchResult":
        from repo_agents.validator import BatchValidator

        return BatchValidator().run_batch(self, constraint, run, artifacts)

    # -- shared lookups -------------------------------------------------

    def _repo_labels(self) -> set[str]:
        if "labels" not in self._cache:
            self._cache["labels"] = set(self.github.repo_labels())
        return self._cache["labels"]
