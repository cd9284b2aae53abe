"""
add-label / remove-label on the triggering issue or pull request.

Adding is never destructive: labels are appended to whatever the subject
carries at write time, so a concurrent removal is never undone.
"""

from __future__ import annotations

from pydantic import Field

from repo_agents.config_loader import OutputConstraint
from repo_agents.models import RunContext
from repo_agents.outputs import Capability, OutputHandler, Payload, max_label, render_usage


class AddLabelPayload(Payload):
    labels: list[str] = Field(min_length=1)


class RemoveLabelPayload(Payload):
    label: str = Field(min_length=1)


class AddLabelHandler(OutputHandler):
    name = Capability.ADD_LABEL
    payload_model = AddLabelPayload
    verb = "add labels"

    def dynamic_context(self, run: RunContext) -> str | None:
        labels = sorted(self._repo_labels())
        listing = ", ".join(labels) if labels else "No labels available"
        return (
            "## Available Repository Labels\n\n"
            "The following labels are available in this repository:\n"
            f"{listing}\n\n"
            "**Important**: You can only add labels that already exist in the repository."
        )

    def describe_usage(self, constraint: OutputConstraint) -> str:
        return render_usage(
            title="Add Labels",
            summary="Add labels to the current issue or pull request.",
            capability=self.name.value,
            outputs_dir=self.outputs_dir,
            schema={"labels": '["string"]'},
            fields=["`labels` (required): Label names to add (see Available labels in the context above)"],
            constraints=[
                f"Maximum label operations: {max_label(constraint)}",
                "Labels must already exist in the repository",
                "Labels array must be non-empty",
                "This adds to existing labels; it never removes any",
            ],
            example={"labels": ["bug", "priority: high"]},
        )

    def check(self, payload: AddLabelPayload, run: RunContext) -> list[str]:
        problems = []
        if run.subject_number is None:
            problems.append("No issue or PR number available")
        existing = self._repo_labels()
        invalid = [label for label in payload.labels if label not in existing]
        if invalid:
            problems.append(
                "Labels do not exist in repository: " + ", ".join(f"'{label}'" for label in invalid)
            )
        return problems

    def commit(self, payload: AddLabelPayload, run: RunContext) -> str:
        self.github.add_labels(run.subject_number, payload.labels)
        return f"added {', '.join(payload.labels)} to #{run.subject_number}"


class RemoveLabelHandler(OutputHandler):
    name = Capability.REMOVE_LABEL
    payload_model = RemoveLabelPayload
    verb = "remove label"

    def describe_usage(self, constraint: OutputConstraint) -> str:
        return render_usage(
            title="Remove Label",
            summary="Remove a label from the current issue or pull request.",
            capability=self.name.value,
            outputs_dir=self.outputs_dir,
            schema={"label": '"string"'},
            fields=["`label` (required): Label name to remove"],
            constraints=[f"Maximum label removals: {max_label(constraint)}"],
            example={"label": "needs-triage"},
        )

    def check(self, payload: RemoveLabelPayload, run: RunContext) -> list[str]:
        if run.subject_number is None:
            return ["No issue or PR number available"]
        return []

    def commit(self, payload: RemoveLabelPayload, run: RunContext) -> str:
        self.github.remove_label(run.subject_number, payload.label)
        return f"removed '{payload.label}' from #{run.subject_number}"
