"""
repo-agents Agent Runner

Launches the agent as an external command with the assembled prompt on
stdin. The agent is opaque: we only learn whether it exited cleanly, what
it cost (if it reports that as JSON on stdout), and which files it touched.
"""

from __future__ import annotations

import json
import subprocess
import time
from pathlib import Path

from loguru import logger
from pydantic import BaseModel, Field

from repo_agents.models import ExecutionMetrics

# where the pipeline keeps its own logs and state inside a checkout
STATE_DIR = ".repo-agents/"


class ExecutionResult(BaseModel):
    success: bool
    exit_code: int | None = None
    metrics: ExecutionMetrics | None = None
    changed_files: list[str] = Field(default_factory=list)
    error: str = ""


class AgentRunner:

    def __init__(
        self,
        command: list[str],
        cwd: Path,
        timeout: int = 3600,
        ignore: tuple[str, ...] = (STATE_DIR,),
    ):
        self.command = command
        self.cwd = cwd
        self.timeout = timeout
        self.ignore = ignore

    def run(self, prompt: str) -> ExecutionResult:
        logger.info(f"[AGENT] Launching: {' '.join(self.command)}")
        started = time.monotonic()
        try:
            proc = subprocess.run(
                self.command,
                input=prompt,
                cwd=self.cwd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired:
            return ExecutionResult(success=False, error=f"Agent timed out after {self.timeout}s")
        except OSError as e:
            return ExecutionResult(success=False, error=f"Agent could not start: {e}")

        metrics = parse_metrics(proc.stdout)
        if metrics.duration_ms is None:
            metrics.duration_ms = int((time.monotonic() - started) * 1000)

        success = proc.returncode == 0 and not _reported_error(proc.stdout)
        if not success:
            logger.error(f"[AGENT] Agent failed (exit {proc.returncode}): {proc.stderr.strip()[:500]}")

        return ExecutionResult(
            success=success,
            exit_code=proc.returncode,
            metrics=metrics,
            changed_files=changed_paths(self.cwd, self.ignore),
            error="" if success else (proc.stderr.strip()[:2000] or "agent reported an error"),
        )


def _load_json(stdout: str) -> dict:
    try:
        data = json.loads(stdout)
    except (json.JSONDecodeError, TypeError):
        return {}
    return data if isinstance(data, dict) else {}


def _reported_error(stdout: str) -> bool:
    return bool(_load_json(stdout).get("is_error"))


def parse_metrics(stdout: str) -> ExecutionMetrics:
    """Pull cost/duration/turns out of a JSON result, when the agent prints one."""
    data = _load_json(stdout)
    return ExecutionMetrics(
        cost_usd=data.get("total_cost_usd"),
        duration_ms=data.get("duration_ms"),
        turns=data.get("num_turns"),
    )


def changed_paths(repo: Path, ignore: tuple[str, ...] = (STATE_DIR,)) -> list[str]:
    """
    Files modified, added or deleted in the working tree.

    Untracked directories are expanded to their files. Anything under an
    `ignore` prefix (our own logs and state) is left out.
    """
    try:
        status = subprocess.run(
            ["git", "status", "--porcelain", "--untracked-files=all"],
            cwd=repo,
            capture_output=True,
            text=True,
            timeout=60,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        logger.warning(f"[AGENT] Could not list changed files: {e}")
        return []
    if status.returncode != 0:
        return []

    paths = []
    for line in status.stdout.splitlines():
        path = line[3:]
        # renames are reported as "old -> new"
        if " -> " in path:
            path = path.split(" -> ", 1)[1]
        path = path.strip('"')
        if any(path.startswith(prefix) for prefix in ignore):
            continue
        paths.append(path)
    return paths
