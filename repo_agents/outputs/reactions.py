"""
add-reaction: emoji reaction on an issue/PR or on a single comment.
"""

from __future__ import annotations

from typing import Literal

from pydantic import model_validator

from repo_agents.config_loader import OutputConstraint
from repo_agents.models import RunContext
from repo_agents.outputs import Capability, Number, OutputHandler, Payload, max_label, render_usage

REACTIONS = ("+1", "-1", "laugh", "confused", "heart", "hooray", "rocket", "eyes")

Reaction = Literal["+1", "-1", "laugh", "confused", "heart", "hooray", "rocket", "eyes"]


class ReactionPayload(Payload):
    reaction: Reaction
    issue_number: Number | None = None
    comment_id: Number | None = None

    @model_validator(mode="after")
    def _one_target(self) -> "ReactionPayload":
        if self.issue_number is None and self.comment_id is None:
            raise ValueError("Either issue_number or comment_id must be specified")
        if self.issue_number is not None and self.comment_id is not None:
            raise ValueError("Cannot specify both issue_number and comment_id")
        return self


class AddReactionHandler(OutputHandler):
    name = Capability.ADD_REACTION
    payload_model = ReactionPayload
    verb = "add reaction"

    def dynamic_context(self, run: RunContext) -> str | None:
        return (
            "## Available Reactions\n\n"
            "The following emoji reactions are supported:\n"
            + "\n".join(f"- `{r}`" for r in REACTIONS)
            + "\n\n**Important**: Use the exact reaction name (e.g., \"+1\", \"rocket\", \"eyes\")."
        )

    def describe_usage(self, constraint: OutputConstraint) -> str:
        return render_usage(
            title="Add Reaction",
            summary="Add an emoji reaction to an issue, PR, or comment.",
            capability=self.name.value,
            outputs_dir=self.outputs_dir,
            schema={"issue_number": "number", "comment_id": "number", "reaction": '"string"'},
            fields=[
                "`issue_number` (optional): Issue or PR number to react to",
                "`comment_id` (optional): Comment ID to react to",
                "`reaction` (required): One of " + ", ".join(f'"{r}"' for r in REACTIONS),
                "Specify either `issue_number` OR `comment_id`, not both",
            ],
            constraints=[
                f"Maximum reactions: {max_label(constraint)}",
                "Must use supported reaction types",
            ],
            example={"issue_number": 123, "reaction": "eyes"},
        )

    def commit(self, payload: ReactionPayload, run: RunContext) -> str:
        self.github.add_reaction(payload.reaction, issue_number=payload.issue_number, comment_id=payload.comment_id)
        target = f"#{payload.issue_number}" if payload.issue_number else f"comment {payload.comment_id}"
        return f"reacted {payload.reaction} on {target}"
