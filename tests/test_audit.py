import json

from repo_agents.audit import AuditAggregator
from repo_agents.config_loader import AuditConfig
from repo_agents.event_bus import EventBus, EventType
from repo_agents.ledger import ErrorLedger
from repo_agents.models import ExecutionMetrics

ALL_GOOD = {"gate": "success", "context": "success", "execution": "success", "outputs": "success"}


def make_auditor(github, tmp_path, **overrides):
    config = AuditConfig(log_dir=str(tmp_path / "logs"), **overrides)
    summary = tmp_path / "summary.md"
    return AuditAggregator(github, config, env={"GITHUB_STEP_SUMMARY": str(summary)}), summary


def test_success_opens_no_ticket(github, run_ctx, tmp_path):
    auditor, summary = make_auditor(github, tmp_path)
    record = auditor.finalize(run_ctx, ALL_GOOD, ErrorLedger(), committed={"add-comment": 1},
                              metrics=ExecutionMetrics(cost_usd=0.12, turns=4))

    assert record.status == "success"
    assert record.ticket_url is None
    assert github.calls == []

    saved = json.loads((tmp_path / "logs" / "audit-42.json").read_text())
    assert saved["status"] == "success"
    assert saved["committed"] == {"add-comment": 1}
    assert "**Status:** success" in summary.read_text()


def test_ledger_errors_fail_the_run(github, run_ctx, tmp_path):
    ledger = ErrorLedger()
    ledger.add("add-label", "Labels do not exist in repository: 'ghost-label'", "add-label.json")
    auditor, _ = make_auditor(github, tmp_path)

    record = auditor.finalize(run_ctx, ALL_GOOD, ledger)

    assert record.status == "failed"
    # errors posted back to the subject, plus one failure ticket
    number, body = github.called("add_comment")[0]
    assert number == 7
    assert "ghost-label" in body
    assert len(github.called("create_issue")) == 1
    title, _, labels, _ = github.called("create_issue")[0]
    assert title == "Agent failure: triage (run 42)"
    assert labels == ["agent-failure"]
    assert record.ticket_url


def test_gate_failure_reported(github, run_ctx, tmp_path):
    stages = {"gate": "failure", "context": "skipped", "execution": "skipped", "outputs": "skipped"}
    auditor, _ = make_auditor(github, tmp_path, create_issues=False)

    record = auditor.finalize(run_ctx, stages, ErrorLedger(), gate_reasons=["User not authorized: @alice"])

    assert record.status == "failed"
    assert github.calls == []
    assert "User not authorized" in AuditAggregator.render_report(record)


def test_ticket_failure_is_logged_not_raised(github, run_ctx, tmp_path):
    github.fail_on.add("create_issue")
    stages = dict(ALL_GOOD, execution="failure")
    auditor, _ = make_auditor(github, tmp_path)

    record = auditor.finalize(run_ctx, stages, ErrorLedger())

    assert record.status == "failed"
    assert record.ticket_url is None


def test_emits_completion_event(github, run_ctx, tmp_path):
    bus = EventBus()
    seen = []
    bus.subscribe(seen.append)
    auditor = AuditAggregator(github, AuditConfig(log_dir=str(tmp_path)), bus=bus, env={})

    auditor.finalize(run_ctx, ALL_GOOD, ErrorLedger())

    assert seen[-1].event_type == EventType.AUDIT_COMPLETE
    assert seen[-1].payload == {"status": "success", "errors": 0}
