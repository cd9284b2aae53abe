"""
repo-agents Audit

The last stage of every run, whatever happened before it. Produces the
AuditRecord, reports validation errors back to the triggering subject, and
on failure opens one tracking issue.

Nothing here raises: every reporting side effect is best-effort and logged.
"""

from __future__ import annotations

import os
from pathlib import Path

from loguru import logger

from repo_agents.config_loader import AuditConfig
from repo_agents.event_bus import EventBus, EventType
from repo_agents.github import GitHubClient, GitHubError
from repo_agents.ledger import ErrorLedger
from repo_agents.models import AuditRecord, ExecutionMetrics, RunContext, StageStatus


class AuditAggregator:

    def __init__(
        self,
        github: GitHubClient,
        config: AuditConfig | None = None,
        bus: EventBus | None = None,
        env: dict[str, str] | None = None,
    ):
        self.github = github
        self.config = config or AuditConfig()
        self.bus = bus
        self.env = os.environ if env is None else env

    def finalize(
        self,
        run: RunContext,
        stages: dict[str, StageStatus],
        ledger: ErrorLedger,
        gate_reasons: list[str] | None = None,
        committed: dict[str, int] | None = None,
        metrics: ExecutionMetrics | None = None,
    ) -> AuditRecord:
        failed = (
            stages.get("gate") != "success"
            or stages.get("execution") != "success"
            or len(ledger) > 0
        )
        record = AuditRecord(
            repository=run.repository,
            run_id=run.run_id,
            agent_name=run.agent_name,
            stages=dict(stages),
            gate_reasons=list(gate_reasons or []),
            errors=ledger.entries,
            committed=dict(committed or {}),
            metrics=metrics,
            status="failed" if failed else "success",
        )

        if ledger and run.subject_number is not None and self.config.post_errors_as_comment:
            self._post_errors(run, ledger)

        if failed and self.config.create_issues:
            record.ticket_url = self._open_ticket(run, record)

        self._persist(record)
        if self.bus:
            self.bus.emit(EventType.AUDIT_COMPLETE, "audit", {"status": record.status, "errors": len(record.errors)})

        log = logger.info if record.status == "success" else logger.warning
        log(f"[AUDIT] Run finished with status: {record.status}")
        return record

    # ------------------------------------------------------------------

    @staticmethod
    def render_report(record: AuditRecord) -> str:
        lines = [
            f"## Agent Run Report: {record.agent_name or 'agent'}",
            "",
            f"**Status:** {record.status}",
            f"**Repository:** {record.repository}",
        ]
        if record.run_id:
            lines.append(f"**Run:** {record.run_id}")

        lines += ["", "### Stages", "", "| Stage | Result |", "|---|---|"]
        lines += [f"| {stage} | {result} |" for stage, result in record.stages.items()]

        if record.gate_reasons:
            lines += ["", "### Pre-flight", ""]
            lines += [f"- {reason}" for reason in record.gate_reasons]

        if record.committed:
            lines += ["", "### Committed", ""]
            lines += [f"- **{cap}**: {count}" for cap, count in record.committed.items()]

        if record.errors:
            lines += ["", "### Errors", ""]
            lines += [entry.render() for entry in record.errors]

        if record.metrics:
            m = record.metrics
            lines += ["", "### Metrics", ""]
            if m.cost_usd is not None:
                lines.append(f"- Cost: ${m.cost_usd:.4f}")
            if m.duration_ms is not None:
                lines.append(f"- Duration: {m.duration_ms / 1000:.1f}s")
            if m.turns is not None:
                lines.append(f"- Turns: {m.turns}")

        return "\n".join(lines) + "\n"

    def _post_errors(self, run: RunContext, ledger: ErrorLedger) -> None:
        body = "## Agent output validation errors\n\n" + ledger.render()
        try:
            self.github.add_comment(run.subject_number, body)
        except GitHubError as e:
            logger.error(f"[AUDIT] Could not post validation errors to #{run.subject_number}: {e}")

    def _open_ticket(self, run: RunContext, record: AuditRecord) -> str | None:
        title = f"Agent failure: {run.agent_name or 'agent'}"
        if run.run_id:
            title += f" (run {run.run_id})"
        try:
            issue = self.github.create_issue(
                title, self.render_report(record), self.config.labels, self.config.assignees
            )
        except GitHubError as e:
            logger.error(f"[AUDIT] Failed to open failure issue: {e}")
            return None
        url = (issue or {}).get("html_url")
        logger.info(f"[AUDIT] Opened failure issue {url}")
        return url

    def _persist(self, record: AuditRecord) -> None:
        try:
            log_dir = Path(self.config.log_dir)
            log_dir.mkdir(parents=True, exist_ok=True)
            (log_dir / f"audit-{record.run_id or 'local'}.json").write_text(record.to_json())
        except OSError as e:
            logger.error(f"[AUDIT] Could not write audit record: {e}")

        summary_path = self.env.get("GITHUB_STEP_SUMMARY")
        if summary_path:
            try:
                with open(summary_path, "a", encoding="utf-8") as f:
                    f.write(self.render_report(record))
            except OSError as e:
                logger.error(f"[AUDIT] Could not write step summary: {e}")
