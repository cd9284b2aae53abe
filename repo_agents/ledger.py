"""
Error ledger.

Every validation or commit problem becomes a LedgerEntry. Each capability
batch owns its own ErrorLedger; the pipeline merges them into the run ledger
that the audit stage reports.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel


class ErrorKind(str, Enum):
    CONFIGURATION = "configuration"   # malformed or missing artifact field
    CONSTRAINT = "constraint"         # cardinality, protected resource, dangling reference
    EXTERNAL = "external"             # platform call failed while committing


class LedgerEntry(BaseModel):
    capability: str
    artifact_ref: str | None = None
    message: str
    kind: ErrorKind = ErrorKind.CONSTRAINT

    def render(self) -> str:
        suffix = f" in {self.artifact_ref}" if self.artifact_ref else ""
        return f"- **{self.capability}**: {self.message}{suffix}"


class ErrorLedger:
    """Append-only list of LedgerEntry objects."""

    def __init__(self, entries: list[LedgerEntry] | None = None):
        self._entries: list[LedgerEntry] = list(entries or [])

    def add(
        self,
        capability: str,
        message: str,
        artifact_ref: str | None = None,
        kind: ErrorKind = ErrorKind.CONSTRAINT,
    ) -> LedgerEntry:
        entry = LedgerEntry(capability=capability, artifact_ref=artifact_ref, message=message, kind=kind)
        self._entries.append(entry)
        return entry

    def extend(self, other: "ErrorLedger") -> None:
        self._entries.extend(other.entries)

    @property
    def entries(self) -> list[LedgerEntry]:
        return list(self._entries)

    def render(self) -> str:
        return "\n".join(e.render() for e in self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __bool__(self) -> bool:
        return bool(self._entries)

    def __iter__(self):
        return iter(self._entries)
