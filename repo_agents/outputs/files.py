"""
update-file: the agent edits files in its own checkout.

There are no artifacts for this capability. The execution sandbox reports
which paths changed and they are checked against the agent's allowed-path
globs; anything outside them is a constraint violation.
"""

from __future__ import annotations

import re
from functools import lru_cache

from repo_agents.config_loader import OutputConstraint
from repo_agents.models import RunContext
from repo_agents.outputs import Capability, OutputHandler


@lru_cache(maxsize=256)
def _glob_regex(pattern: str) -> re.Pattern:
    out = []
    i = 0
    while i < len(pattern):
        if pattern.startswith("**/", i):
            out.append("(?:.*/)?")
            i += 3
        elif pattern.startswith("**", i):
            out.append(".*")
            i += 2
        elif pattern[i] == "*":
            out.append("[^/]*")
            i += 1
        elif pattern[i] == "?":
            out.append("[^/]")
            i += 1
        else:
            out.append(re.escape(pattern[i]))
            i += 1
    return re.compile("".join(out) + r"\Z")


def path_allowed(path: str, globs: list[str]) -> bool:
    """`*` stays inside one directory, `**` crosses directories."""
    normalized = path[2:] if path.startswith("./") else path
    return any(_glob_regex(g).match(normalized) for g in globs)


class UpdateFileHandler(OutputHandler):
    name = Capability.UPDATE_FILE
    artifact_driven = False
    verb = "update files"

    def __init__(self, github, outputs_dir: str = "/tmp/outputs", allowed_paths: list[str] | None = None):
        super().__init__(github, outputs_dir)
        self.allowed_paths = list(allowed_paths or [])

    def describe_usage(self, constraint: OutputConstraint) -> str:
        lines = [
            "## Skill: Update Files",
            "",
            "Modify existing files in the repository.",
            "",
            "**Workflow:**",
            "1. Use the Read tool to view current file contents",
            "2. Use the Edit tool to make precise changes",
            f"3. Commit changes{' with signing' if constraint.sign else ''}",
            "4. Push to the appropriate branch",
        ]
        if self.allowed_paths:
            lines += ["", "**Allowed paths (glob patterns):**"]
            lines += [f"  - `{p}`" for p in self.allowed_paths]
            lines += [
                "",
                "**Security notice:** You MUST only modify files matching these patterns. "
                "Attempts to modify other files will fail validation.",
            ]
        lines += [
            "",
            "**Constraints:**",
            "- Commits must be signed (configured)" if constraint.sign else "- Standard commit workflow",
        ]
        return "\n".join(lines)

    def disallowed(self, changed_paths: list[str]) -> list[str]:
        """Changed paths that fall outside the allowed globs."""
        if not self.allowed_paths:
            return list(changed_paths)
        return [p for p in changed_paths if not path_allowed(p, self.allowed_paths)]

    def commit(self, payload, run: RunContext) -> str:
        raise NotImplementedError("update-file has no artifacts to commit; edits are checked with disallowed()")
