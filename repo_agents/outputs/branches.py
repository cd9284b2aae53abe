"""
Branch management: create-branch, delete-branch.
"""

from __future__ import annotations

import re

from pydantic import Field

from repo_agents.config_loader import OutputConstraint
from repo_agents.models import RunContext
from repo_agents.outputs import Capability, OutputHandler, Payload, max_label, render_usage
from repo_agents.github import GitHubError

BRANCH_NAME_RE = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9/_.-]*$")
PROTECTED_BRANCHES = frozenset({"main", "master", "develop", "staging", "production"})


def valid_branch_name(name: str) -> bool:
    return bool(BRANCH_NAME_RE.match(name))


class CreateBranchPayload(Payload):
    branch: str = Field(min_length=1)
    from_ref: str = "main"
    from_sha: str | None = None


class DeleteBranchPayload(Payload):
    branch: str = Field(min_length=1)


class CreateBranchHandler(OutputHandler):
    name = Capability.CREATE_BRANCH
    payload_model = CreateBranchPayload
    verb = "create branch"

    def describe_usage(self, constraint: OutputConstraint) -> str:
        return render_usage(
            title="Create Branch",
            summary="Create a new branch in the repository.",
            capability=self.name.value,
            outputs_dir=self.outputs_dir,
            schema={"branch": '"string"', "from_ref": '"string"', "from_sha": '"string"'},
            fields=[
                "`branch` (required): Branch name to create (e.g., \"feature/new-feature\")",
                "`from_ref` (optional): Branch/tag to create from (default: \"main\")",
                "`from_sha` (optional): Specific commit SHA to create from (overrides from_ref)",
            ],
            constraints=[
                f"Maximum branches: {max_label(constraint)}",
                "Branch name must be valid (no spaces, starts with letter/number)",
                "Branch must not already exist",
            ],
            example={"branch": "feature/new-feature", "from_ref": "main"},
            important="The branch will be created immediately.",
        )

    def check(self, payload: CreateBranchPayload, run: RunContext) -> list[str]:
        if not valid_branch_name(payload.branch):
            return [f"Invalid branch name '{payload.branch}'"]
        if self.github.branch_exists(payload.branch):
            return [f"Branch '{payload.branch}' already exists"]
        return []

    def commit(self, payload: CreateBranchPayload, run: RunContext) -> str:
        sha = payload.from_sha or self.github.ref_sha(payload.from_ref)
        if not sha:
            raise GitHubError(f"Failed to resolve from_ref '{payload.from_ref}'")
        self.github.create_ref(payload.branch, sha)
        return f"created branch '{payload.branch}' at {sha[:7]}"


class DeleteBranchHandler(OutputHandler):
    name = Capability.DELETE_BRANCH
    payload_model = DeleteBranchPayload
    verb = "delete branch"

    def describe_usage(self, constraint: OutputConstraint) -> str:
        return render_usage(
            title="Delete Branch",
            summary="Delete a branch from the repository.",
            capability=self.name.value,
            outputs_dir=self.outputs_dir,
            schema={"branch": '"string"'},
            fields=["`branch` (required): Branch name to delete (e.g., \"feature/old-feature\")"],
            constraints=[
                f"Maximum deletions: {max_label(constraint)}",
                "Cannot delete protected branches (" + ", ".join(sorted(PROTECTED_BRANCHES)) + ")",
            ],
            example={"branch": "feature/old-feature"},
            important="The branch will be permanently deleted.",
        )

    def check(self, payload: DeleteBranchPayload, run: RunContext) -> list[str]:
        if payload.branch in PROTECTED_BRANCHES:
            return [f"Cannot delete protected branch '{payload.branch}'"]
        return []

    def commit(self, payload: DeleteBranchPayload, run: RunContext) -> str:
        self.github.delete_ref(payload.branch)
        return f"deleted branch '{payload.branch}'"
