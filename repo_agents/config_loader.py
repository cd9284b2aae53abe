"""
Configuration loader for repo-agents.
Merges defaults with per-repo .github/repo-agents.yaml overrides,
and loads agent definitions.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator


# ---------------------------------------------------------------------------
# Agent definition
# ---------------------------------------------------------------------------

class OutputConstraint(BaseModel):
    """Per-capability limits declared by the agent author."""
    model_config = ConfigDict(frozen=True)

    max: int | None = Field(default=None, ge=0)
    sign: bool = False


class AgentDefinition(BaseModel):
    """
    What an agent may do, and who may trigger it.

    `outputs` keeps the author's declaration order; identifiers are resolved
    against the capability registry later, so unknown names survive loading.
    """
    model_config = ConfigDict(frozen=True)

    name: str
    instructions: str = ""
    outputs: dict[str, OutputConstraint] = Field(default_factory=dict)
    allowed_paths: list[str] = Field(default_factory=list)
    allowed_users: list[str] = Field(default_factory=list)
    allowed_actors: list[str] = Field(default_factory=list)
    allowed_teams: list[str] = Field(default_factory=list)
    trigger_labels: list[str] = Field(default_factory=list)
    rate_limit_minutes: int = Field(default=5, ge=0)

    @field_validator("outputs", mode="before")
    @classmethod
    def _expand_shorthand(cls, value: Any) -> Any:
        # `add-comment: true` and `add-comment:` both mean "no constraint"
        if isinstance(value, dict):
            expanded = {}
            for key, cfg in value.items():
                if cfg is False:
                    continue
                expanded[key] = {} if cfg is None or cfg is True else cfg
            return expanded
        return value

    @property
    def authorized_users(self) -> list[str]:
        return [*self.allowed_users, *self.allowed_actors]


# ---------------------------------------------------------------------------
# Pipeline schema
# ---------------------------------------------------------------------------

class ExecutionConfig(BaseModel):
    command: list[str] = Field(default_factory=lambda: ["claude", "-p", "--output-format", "json"])
    timeout_seconds: int = 3600


class AuditConfig(BaseModel):
    create_issues: bool = True
    labels: list[str] = Field(default_factory=lambda: ["agent-failure"])
    assignees: list[str] = Field(default_factory=list)
    log_dir: str = ".repo-agents/logs"
    post_errors_as_comment: bool = True


class CompatConfig(BaseModel):
    skip_unknown_outputs: bool = False


class RepoAgentsConfig(BaseModel):
    outputs_dir: str = "/tmp/outputs"
    execution: ExecutionConfig = Field(default_factory=ExecutionConfig)
    audit: AuditConfig = Field(default_factory=AuditConfig)
    compat: CompatConfig = Field(default_factory=CompatConfig)


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "config.yaml"


def _deep_merge(base: dict, override: dict) -> dict:
    """Recursively merge override into base."""
    merged = base.copy()
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(repo_path: Path | None = None) -> RepoAgentsConfig:
    """
    Load config by merging:
      1. Built-in defaults (repo_agents/config.yaml)
      2. Repo-level overrides (<repo>/.github/repo-agents.yaml)
      3. Environment variable overrides
    """
    with open(_DEFAULT_CONFIG_PATH, "r") as f:
        base: dict[str, Any] = yaml.safe_load(f) or {}

    if repo_path:
        repo_config = repo_path / ".github" / "repo-agents.yaml"
        if repo_config.exists():
            with open(repo_config, "r") as f:
                overrides: dict[str, Any] = yaml.safe_load(f) or {}
            base = _deep_merge(base, overrides)

    outputs_dir = os.environ.get("REPO_AGENTS_OUTPUTS_DIR")
    if outputs_dir:
        base["outputs_dir"] = outputs_dir

    return RepoAgentsConfig(**base)


def load_agent(path: Path) -> AgentDefinition:
    """Read an agent definition from a YAML file."""
    with open(path, "r") as f:
        data: dict[str, Any] = yaml.safe_load(f) or {}
    data.setdefault("name", path.stem)
    return AgentDefinition(**data)


CREDENTIAL_VARS = ("ANTHROPIC_API_KEY", "CLAUDE_ACCESS_TOKEN")


def validate_api_keys(env: dict[str, str] | None = None) -> dict[str, bool]:
    """Check which agent credentials are available."""
    env = os.environ if env is None else env
    return {name: bool(env.get(name)) for name in CREDENTIAL_VARS}
