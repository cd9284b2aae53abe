"""
Context assembly.

The bundle handed to the agent is a fixed sequence of blocks:

  header -> event detail (issue | PR | discussion) -> collected inputs
         -> one fragment per capability, in declaration order -> end marker
"""

from __future__ import annotations

from typing import Any

from loguru import logger

from repo_agents.config_loader import AgentDefinition, OutputConstraint
from repo_agents.github import GitHubClient, GitHubError
from repo_agents.models import EventKind, RunContext
from repo_agents.outputs import OutputHandler

END_MARKER = "=== END OF CONTEXT ==="


class ContextAssembler:

    def __init__(self, github: GitHubClient):
        self.github = github

    def blocks(
        self,
        run: RunContext,
        handlers: list[tuple[OutputHandler, OutputConstraint]],
        collected_inputs: str | None = None,
    ) -> list[str]:
        blocks = [self._header(run)]

        event_block = self._event_block(run)
        if event_block:
            blocks.append(event_block)

        if collected_inputs and collected_inputs.strip():
            blocks.append("## Collected Inputs\n\n" + collected_inputs.strip())

        for handler, _ in handlers:
            try:
                fragment = handler.dynamic_context(run)
            except GitHubError as e:
                logger.warning(f"[CONTEXT] {handler.name.value}: dynamic context unavailable: {e}")
                continue
            if fragment:
                blocks.append(fragment)

        blocks.append(END_MARKER)
        return blocks

    def assemble(
        self,
        run: RunContext,
        handlers: list[tuple[OutputHandler, OutputConstraint]],
        collected_inputs: str | None = None,
    ) -> str:
        return "\n\n".join(self.blocks(run, handlers, collected_inputs))

    def build_prompt(
        self,
        context: str,
        agent: AgentDefinition,
        handlers: list[tuple[OutputHandler, OutputConstraint]],
    ) -> str:
        """Context, then the agent's instructions, then the operations it may declare."""
        prompt = f"{context}\n\n---\n\n{agent.instructions.strip()}"
        usage = [handler.describe_usage(constraint) for handler, constraint in handlers]
        if usage:
            prompt += (
                "\n\n---\n# Available Operations\n\n"
                "You are authorized to perform the following operations in this workflow. "
                "Use these operations to complete your assigned task.\n\n"
                + "\n\n".join(usage)
            )
        return prompt + "\n"

    # ------------------------------------------------------------------

    @staticmethod
    def _header(run: RunContext) -> str:
        return f"GitHub Event: {run.event_name}\nRepository: {run.repository}\nActor: @{run.actor}"

    def _event_block(self, run: RunContext) -> str | None:
        kind = run.event_kind
        payload = run.event_payload
        if kind == EventKind.DISCUSSION:
            discussion = payload.get("discussion")
            return self._render("Discussion", discussion) if discussion else None

        if kind == EventKind.PULL_REQUEST:
            subject = payload.get("pull_request") or payload.get("issue")
            if not subject and run.subject_number:
                subject = self._fetch(lambda: self.github.pull(run.subject_number))
            return self._render("PR", subject) if subject else None

        if kind == EventKind.ISSUE:
            subject = payload.get("issue")
            if not subject and run.subject_number:
                subject = self._fetch(lambda: self.github.issue(run.subject_number))
            return self._render("Issue", subject) if subject else None

        return None

    @staticmethod
    def _render(title: str, subject: dict[str, Any]) -> str:
        author = (subject.get("user") or {}).get("login", "unknown")
        labels = [label.get("name", "") for label in subject.get("labels") or []]
        lines = [f"## {title} #{subject.get('number', '?')}: {subject.get('title', '')}", f"Author: @{author}"]
        if labels:
            lines.append(f"Labels: {', '.join(labels)}")
        lines += ["Body:", subject.get("body") or "(empty)"]
        return "\n".join(lines)

    @staticmethod
    def _fetch(call) -> dict[str, Any] | None:
        try:
            return call()
        except GitHubError as e:
            logger.warning(f"[CONTEXT] Could not load event subject: {e}")
            return None
