"""
Artifact collector.

Finds `<capability>.json` and `<capability>-<n>.json` in the outputs
directory. Order is stable: the implicit instance first, then by ordinal.
"""

from __future__ import annotations

import json
import re
from pathlib import Path

from loguru import logger

from repo_agents.models import OutputArtifact


class ArtifactCollector:

    def __init__(self, outputs_dir: Path | str):
        self.outputs_dir = Path(outputs_dir)

    def collect(self, capability: str) -> list[OutputArtifact]:
        if not self.outputs_dir.is_dir():
            return []

        pattern = re.compile(rf"^{re.escape(capability)}(?:-(\d+))?\.json$")
        found: list[OutputArtifact] = []
        for path in self.outputs_dir.iterdir():
            match = pattern.match(path.name)
            if not match or not path.is_file():
                continue
            ordinal = int(match.group(1)) if match.group(1) is not None else None
            found.append(self._read(capability, ordinal, path))

        found.sort(key=lambda a: (a.ordinal is not None, a.ordinal or 0, a.path.name))
        if found:
            logger.debug(f"[COLLECTOR] {capability}: {[a.ref for a in found]}")
        return found

    @staticmethod
    def _read(capability: str, ordinal: int | None, path: Path) -> OutputArtifact:
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            return OutputArtifact(capability=capability, ordinal=ordinal, path=path, parse_error=str(e))
        return OutputArtifact(capability=capability, ordinal=ordinal, path=path, payload=payload)
