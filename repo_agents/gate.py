"""
repo-agents Pre-flight Gate

Decides whether a run may proceed. Four checks, all of them always run so
the audit can report every reason at once:

  1. Credentials  - an agent credential is configured
  2. Actor        - admin/write, org member, allow-listed, or team member
  3. Labels       - subject carries one of the trigger labels (if any)
  4. Rate limit   - no successful run inside the minimum interval

Read-only. Platform lookups that fail count as "no".
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable

from loguru import logger
from pydantic import BaseModel, Field

from repo_agents.config_loader import AgentDefinition, validate_api_keys
from repo_agents.github import GitHubClient, GitHubError
from repo_agents.models import RunContext

WRITE_PERMISSIONS = ("admin", "write")


class GateResult(BaseModel):
    should_run: bool
    reasons: list[str] = Field(default_factory=list)


class AuthorizationGate:

    def __init__(
        self,
        github: GitHubClient,
        env: dict[str, str] | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.github = github
        self.env = env
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def evaluate(self, run: RunContext, agent: AgentDefinition) -> GateResult:
        reasons: list[str] = []
        for check in (self._check_credentials, self._check_actor, self._check_labels, self._check_rate_limit):
            reason = check(run, agent)
            if reason:
                logger.warning(f"[GATE] {reason}")
                reasons.append(reason)

        if not reasons:
            logger.info("[GATE] All validation checks passed")
        return GateResult(should_run=not reasons, reasons=reasons)

    # ------------------------------------------------------------------

    def _check_credentials(self, run: RunContext, agent: AgentDefinition) -> str | None:
        keys = validate_api_keys(self.env)
        if not any(keys.values()):
            return (
                "No agent authentication found. Set either ANTHROPIC_API_KEY (API access) "
                "or CLAUDE_ACCESS_TOKEN (subscription access)."
            )
        for name, present in keys.items():
            if present:
                logger.debug(f"[GATE] {name} is configured")
        return None

    def _check_actor(self, run: RunContext, agent: AgentDefinition) -> str | None:
        actor = run.actor
        permission = self._safe(lambda: self.github.permission_level(actor), "none")
        if permission in WRITE_PERMISSIONS:
            logger.debug(f"[GATE] @{actor} has {permission} permission")
            return None
        if self._safe(lambda: self.github.is_org_member(actor), False):
            logger.debug(f"[GATE] @{actor} is an organization member")
            return None
        if actor in agent.authorized_users:
            logger.debug(f"[GATE] @{actor} is in the allowed users list")
            return None
        for team in agent.allowed_teams:
            if self._safe(lambda t=team: self.github.is_team_member(t, actor), False):
                logger.debug(f"[GATE] @{actor} is a member of team {team}")
                return None
        return f"User not authorized: @{actor} may not trigger this agent"

    def _check_labels(self, run: RunContext, agent: AgentDefinition) -> str | None:
        if not agent.trigger_labels or run.subject_number is None:
            return None
        current = set(self._safe(lambda: self.github.issue_labels(run.subject_number), []))
        if current & set(agent.trigger_labels):
            return None
        return f"Required label not found. Need one of: {', '.join(agent.trigger_labels)}"

    def _check_rate_limit(self, run: RunContext, agent: AgentDefinition) -> str | None:
        workflow = run.workflow_file or run.workflow
        if agent.rate_limit_minutes <= 0 or not workflow:
            return None
        previous = self._safe(lambda: self.github.recent_successful_runs(workflow), [])
        now = self.clock()
        for finished in previous:
            elapsed = (now - finished).total_seconds() / 60
            if 0 <= elapsed < agent.rate_limit_minutes:
                return (
                    f"Rate limit: agent ran {int(elapsed)} minutes ago. "
                    f"Minimum interval is {agent.rate_limit_minutes} minutes."
                )
        return None

    @staticmethod
    def _safe(call, default):
        try:
            return call()
        except GitHubError as e:
            logger.debug(f"[GATE] lookup failed, treating as negative: {e}")
            return default
