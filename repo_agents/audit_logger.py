"""Append-only JSONL record of every pipeline event."""

from __future__ import annotations

from pathlib import Path

from repo_agents.event_bus import EventBus, PipelineEvent


class AuditLogger:

    def __init__(self, file_path: str | Path, event_bus: EventBus):
        self.file_path = Path(file_path)
        self.file_path.parent.mkdir(parents=True, exist_ok=True)
        event_bus.subscribe(self.log_event)

    def log_event(self, event: PipelineEvent) -> None:
        with self.file_path.open("a", encoding="utf-8") as f:
            f.write(event.model_dump_json() + "\n")
