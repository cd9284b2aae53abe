"""
Capability registry: identifier -> handler.

The identifier set is closed. An unknown identifier in an agent definition
is a configuration error, unless compatibility mode asks for the older
behavior of warning and skipping it.
"""

from __future__ import annotations

from loguru import logger

from repo_agents.config_loader import AgentDefinition, OutputConstraint
from repo_agents.github import GitHubClient
from repo_agents.outputs import Capability, OutputHandler
from repo_agents.outputs.branches import CreateBranchHandler, DeleteBranchHandler
from repo_agents.outputs.comments import AddCommentHandler
from repo_agents.outputs.files import UpdateFileHandler
from repo_agents.outputs.issues import (
    CloseIssueHandler,
    ConvertToDiscussionHandler,
    CreateIssueHandler,
    ReopenIssueHandler,
)
from repo_agents.outputs.labels import AddLabelHandler, RemoveLabelHandler
from repo_agents.outputs.pulls import ApprovePRHandler, ClosePRHandler, CreatePRHandler, MergePRHandler
from repo_agents.outputs.reactions import AddReactionHandler

HANDLERS: dict[Capability, type[OutputHandler]] = {
    Capability.ADD_COMMENT: AddCommentHandler,
    Capability.ADD_LABEL: AddLabelHandler,
    Capability.REMOVE_LABEL: RemoveLabelHandler,
    Capability.CREATE_ISSUE: CreateIssueHandler,
    Capability.CREATE_PR: CreatePRHandler,
    Capability.UPDATE_FILE: UpdateFileHandler,
    Capability.CLOSE_ISSUE: CloseIssueHandler,
    Capability.CLOSE_PR: ClosePRHandler,
    Capability.REOPEN_ISSUE: ReopenIssueHandler,
    Capability.ADD_REACTION: AddReactionHandler,
    Capability.CREATE_BRANCH: CreateBranchHandler,
    Capability.DELETE_BRANCH: DeleteBranchHandler,
    Capability.MERGE_PR: MergePRHandler,
    Capability.APPROVE_PR: ApprovePRHandler,
    Capability.CONVERT_TO_DISCUSSION: ConvertToDiscussionHandler,
}


class UnknownCapabilityError(ValueError):
    """An agent declared an output identifier that has no handler."""


class CapabilityRegistry:

    def __init__(self, github: GitHubClient, outputs_dir: str = "/tmp/outputs", skip_unknown: bool = False):
        self.github = github
        self.outputs_dir = outputs_dir
        self.skip_unknown = skip_unknown

    def resolve(self, identifier: str) -> type[OutputHandler] | None:
        try:
            return HANDLERS[Capability(identifier)]
        except ValueError:
            return None

    def load(self, agent: AgentDefinition) -> list[tuple[OutputHandler, OutputConstraint]]:
        """Instantiate handlers for every declared output, in declaration order."""
        unknown = [name for name in agent.outputs if self.resolve(name) is None]
        if unknown and not self.skip_unknown:
            raise UnknownCapabilityError(
                f"Agent '{agent.name}' declares unknown outputs: {', '.join(unknown)}. "
                f"Known outputs: {', '.join(c.value for c in Capability)}"
            )

        resolved = []
        for name, constraint in agent.outputs.items():
            handler_cls = self.resolve(name)
            if handler_cls is None:
                logger.warning(f"[OUTPUTS] Unknown output type '{name}', skipping")
                continue
            if handler_cls is UpdateFileHandler:
                handler = UpdateFileHandler(self.github, self.outputs_dir, agent.allowed_paths)
            else:
                handler = handler_cls(self.github, self.outputs_dir)
            resolved.append((handler, constraint))
        return resolved
