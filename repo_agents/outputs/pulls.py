"""
Pull request capabilities: create-pr, close-pr, merge-pr, approve-pr.
"""

from __future__ import annotations

from typing import Literal

from loguru import logger

from repo_agents.config_loader import OutputConstraint
from repo_agents.github import GitHubError
from repo_agents.models import RunContext
from repo_agents.outputs import Capability, Number, OutputHandler, Payload, max_label, render_usage
from repo_agents.outputs.branches import valid_branch_name
from repo_agents.outputs.issues import check_title


class CreatePRPayload(Payload):
    title: str
    body: str
    head: str
    base: str = "main"
    draft: bool = False


class ClosePRPayload(Payload):
    pr_number: Number | None = None
    comment: str | None = None


class MergePRPayload(Payload):
    pr_number: Number
    merge_method: Literal["merge", "squash", "rebase"] = "merge"
    commit_title: str | None = None
    commit_message: str | None = None
    delete_branch: bool = True


class ApprovePRPayload(Payload):
    pr_number: Number
    body: str = "Automated approval"


class CreatePRHandler(OutputHandler):
    name = Capability.CREATE_PR
    payload_model = CreatePRPayload
    verb = "create pull request"

    def describe_usage(self, constraint: OutputConstraint) -> str:
        signing = "Commits must be signed (configured)" if constraint.sign else "Standard commit workflow"
        return render_usage(
            title="Create Pull Request",
            summary=(
                "Open a pull request from a branch you have already pushed. "
                "Create the branch, commit and push with git first."
            ),
            capability=self.name.value,
            outputs_dir=self.outputs_dir,
            schema={
                "title": '"string"',
                "body": '"string"',
                "head": '"string"',
                "base": '"string"',
                "draft": "boolean",
            },
            fields=[
                "`title` (required): Clear PR title",
                "`body` (required): Detailed description",
                "`head` (required): Branch containing your changes",
                "`base` (optional): Target branch (default: \"main\")",
                "`draft` (optional): Open as draft (default: false)",
            ],
            constraints=[f"Maximum PRs: {max_label(constraint)}", signing, "The head branch must exist"],
            example={"title": "fix: handle empty config", "body": "Fixes #42", "head": "fix/empty-config"},
        )

    def check(self, payload: CreatePRPayload, run: RunContext) -> list[str]:
        problems = check_title(payload.title)
        if not payload.body.strip():
            problems.append("body is required")
        if not valid_branch_name(payload.head):
            problems.append(f"Invalid branch name '{payload.head}'")
        elif not self.github.branch_exists(payload.head):
            problems.append(f"Head branch '{payload.head}' does not exist")
        return problems

    def commit(self, payload: CreatePRPayload, run: RunContext) -> str:
        pr = self.github.create_pull(payload.title, payload.body, payload.head, payload.base, payload.draft)
        return f"opened PR #{(pr or {}).get('number', '?')}"


class ClosePRHandler(OutputHandler):
    name = Capability.CLOSE_PR
    payload_model = ClosePRPayload
    verb = "close pull request"

    def describe_usage(self, constraint: OutputConstraint) -> str:
        return render_usage(
            title="Close Pull Request",
            summary="Close a pull request without merging, by default the current one.",
            capability=self.name.value,
            outputs_dir=self.outputs_dir,
            schema={"pr_number": "number (optional)", "comment": '"string" (optional)'},
            fields=[
                "`pr_number` (optional): PR to close (default: the current PR)",
                "`comment` (optional): Comment posted before closing",
            ],
            constraints=[f"Maximum closures: {max_label(constraint)}"],
            example={"comment": "Superseded by #88."},
        )

    def check(self, payload: ClosePRPayload, run: RunContext) -> list[str]:
        if payload.pr_number is None and run.subject_number is None:
            return ["No issue or PR number available"]
        return []

    def commit(self, payload: ClosePRPayload, run: RunContext) -> str:
        number = payload.pr_number or run.subject_number
        if payload.comment:
            self.github.add_comment(number, payload.comment)
        # PRs share the issues state endpoint
        self.github.set_issue_state(number, "closed")
        return f"closed PR #{number}"


class MergePRHandler(OutputHandler):
    name = Capability.MERGE_PR
    payload_model = MergePRPayload
    verb = "merge PR"

    def describe_usage(self, constraint: OutputConstraint) -> str:
        return render_usage(
            title="Merge Pull Request",
            summary="Merge a pull request.",
            capability=self.name.value,
            outputs_dir=self.outputs_dir,
            schema={
                "pr_number": "number",
                "merge_method": '"merge" | "squash" | "rebase"',
                "commit_title": '"string"',
                "commit_message": '"string"',
                "delete_branch": "boolean",
            },
            fields=[
                "`pr_number` (required): Pull request number to merge",
                "`merge_method` (optional): \"merge\", \"squash\", or \"rebase\" (default: \"merge\")",
                "`commit_title` (optional): Custom merge commit title",
                "`commit_message` (optional): Custom merge commit message",
                "`delete_branch` (optional): Delete branch after merge (default: true)",
            ],
            constraints=[
                f"Maximum merges: {max_label(constraint)}",
                "PR must be open and mergeable",
                "Merge method must be allowed by repository settings",
            ],
            example={"pr_number": 123, "merge_method": "squash", "commit_title": "feat: add new feature (#123)"},
            important="The PR will be merged immediately.",
        )

    def check(self, payload: MergePRPayload, run: RunContext) -> list[str]:
        pr = self.github.pull(payload.pr_number)
        self._cache[f"pr:{payload.pr_number}"] = pr
        state = pr.get("state", "")
        if state != "open":
            return [f"PR #{payload.pr_number} is not open (state: {state or 'unknown'})"]
        return []

    def commit(self, payload: MergePRPayload, run: RunContext) -> str:
        self.github.merge_pull(payload.pr_number, payload.merge_method, payload.commit_title, payload.commit_message)
        if payload.delete_branch:
            head = self._cache.get(f"pr:{payload.pr_number}", {}).get("head", {}).get("ref")
            if head:
                try:
                    self.github.delete_ref(head)
                except GitHubError as e:
                    logger.warning(f"[OUTPUTS] Merged PR #{payload.pr_number} but could not delete '{head}': {e}")
        return f"merged PR #{payload.pr_number} ({payload.merge_method})"


class ApprovePRHandler(OutputHandler):
    name = Capability.APPROVE_PR
    payload_model = ApprovePRPayload
    verb = "approve PR"

    def describe_usage(self, constraint: OutputConstraint) -> str:
        return render_usage(
            title="Approve Pull Request",
            summary="Leave an approving review on a pull request.",
            capability=self.name.value,
            outputs_dir=self.outputs_dir,
            schema={"pr_number": "number", "body": '"string"'},
            fields=[
                "`pr_number` (required): Pull request number to approve",
                "`body` (optional): Review comment explaining the approval",
            ],
            constraints=[f"Maximum approvals: {max_label(constraint)}", "Cannot approve your own PR"],
            example={"pr_number": 123, "body": "LGTM! All checks pass and changes are well-tested."},
            important="This will create an approving review.",
        )

    def commit(self, payload: ApprovePRPayload, run: RunContext) -> str:
        self.github.create_review(payload.pr_number, payload.body, "APPROVE")
        return f"approved PR #{payload.pr_number}"
