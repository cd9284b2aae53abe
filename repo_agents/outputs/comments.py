"""
add-comment: post a comment on the triggering issue or pull request.
"""

from __future__ import annotations

from repo_agents.config_loader import OutputConstraint
from repo_agents.models import RunContext
from repo_agents.outputs import Capability, OutputHandler, Payload, max_label, render_usage

MAX_COMMENT_LENGTH = 65536


class CommentPayload(Payload):
    body: str


def attribution_footer(run: RunContext) -> str:
    agent = f"`{run.agent_name}`" if run.agent_name else "an automated agent"
    footer = f"\n\n---\n*Posted by {agent} via repo-agents"
    if run.run_url:
        footer += f" · [workflow run]({run.run_url})"
    return footer + "*"


class AddCommentHandler(OutputHandler):
    name = Capability.ADD_COMMENT
    payload_model = CommentPayload
    verb = "post comment"

    def describe_usage(self, constraint: OutputConstraint) -> str:
        return render_usage(
            title="Add Comment",
            summary="Add a comment to the current issue or pull request.",
            capability=self.name.value,
            outputs_dir=self.outputs_dir,
            schema={"body": '"string"'},
            fields=["`body` (required): Comment text in markdown"],
            constraints=[
                f"Maximum comments: {max_label(constraint)}",
                f"Body must be non-empty and at most {MAX_COMMENT_LENGTH} characters, including the attribution footer",
            ],
            example={"body": "Thank you for reporting this issue! We'll look into it."},
        )

    def check(self, payload: CommentPayload, run: RunContext) -> list[str]:
        problems = []
        if not payload.body.strip():
            problems.append("Comment body is empty or missing")
        elif len(payload.body + attribution_footer(run)) > MAX_COMMENT_LENGTH:
            problems.append(f"Comment body exceeds {MAX_COMMENT_LENGTH} characters")
        if run.subject_number is None:
            problems.append("No issue or PR number available")
        return problems

    def commit(self, payload: CommentPayload, run: RunContext) -> str:
        self.github.add_comment(run.subject_number, payload.body + attribution_footer(run))
        return f"commented on #{run.subject_number}"
