from datetime import timedelta

from repo_agents.config_loader import AgentDefinition
from repo_agents.gate import AuthorizationGate
from repo_agents.github import GitHubError

CREDS = {"ANTHROPIC_API_KEY": "sk-test"}


def make_gate(github, now, env=None):
    return AuthorizationGate(github, env=CREDS if env is None else env, clock=lambda: now)


def test_write_permission_passes(github, run_ctx, now):
    github.permissions["alice"] = "write"
    result = make_gate(github, now).evaluate(run_ctx, AgentDefinition(name="triage"))
    assert result.should_run
    assert result.reasons == []


def test_unauthorized_actor_is_rejected(github, run_ctx, now):
    result = make_gate(github, now).evaluate(run_ctx, AgentDefinition(name="triage"))
    assert not result.should_run
    assert any("User not authorized" in r for r in result.reasons)


def test_allow_lists_and_teams(github, run_ctx, now):
    gate = make_gate(github, now)
    assert gate.evaluate(run_ctx, AgentDefinition(name="a", allowed_users=["alice"])).should_run
    assert gate.evaluate(run_ctx, AgentDefinition(name="a", allowed_actors=["alice"])).should_run

    github.teams["maintainers"] = {"alice"}
    assert gate.evaluate(run_ctx, AgentDefinition(name="a", allowed_teams=["maintainers"])).should_run

    github.org_members.add("alice")
    assert gate.evaluate(run_ctx, AgentDefinition(name="a")).should_run


def test_missing_credentials(github, run_ctx, now):
    github.permissions["alice"] = "admin"
    result = make_gate(github, now, env={}).evaluate(run_ctx, AgentDefinition(name="triage"))
    assert not result.should_run
    assert "No agent authentication found" in result.reasons[0]


def test_all_checks_reported_together(github, run_ctx, now):
    agent = AgentDefinition(name="triage", trigger_labels=["agent"])
    result = make_gate(github, now, env={}).evaluate(run_ctx, agent)
    assert len(result.reasons) == 3
    assert "Required label not found. Need one of: agent" in result.reasons


def test_trigger_label_present(github, run_ctx, now):
    github.permissions["alice"] = "write"
    github.subject_labels[7] = ["agent", "bug"]
    agent = AgentDefinition(name="triage", trigger_labels=["agent"])
    assert make_gate(github, now).evaluate(run_ctx, agent).should_run


def test_rate_limit(github, run_ctx, now):
    github.permissions["alice"] = "write"
    agent = AgentDefinition(name="triage", rate_limit_minutes=10)
    gate = make_gate(github, now)

    # first run ever
    assert gate.evaluate(run_ctx, agent).should_run

    github.runs = [now - timedelta(minutes=3)]
    result = gate.evaluate(run_ctx, agent)
    assert not result.should_run
    assert result.reasons == ["Rate limit: agent ran 3 minutes ago. Minimum interval is 10 minutes."]

    github.runs = [now - timedelta(minutes=11)]
    assert gate.evaluate(run_ctx, agent).should_run


def test_failed_lookup_counts_as_no(github, run_ctx, now):
    def boom(actor):
        raise GitHubError("rate limited", stderr="HTTP 403")

    github.permission_level = boom
    result = make_gate(github, now).evaluate(run_ctx, AgentDefinition(name="triage"))
    assert not result.should_run


def test_rate_limit_looks_up_the_workflow_file(github, run_ctx, now):
    github.permissions["alice"] = "write"
    run_ctx = run_ctx.model_copy(
        update={"workflow": "Issue Triage", "workflow_ref": "octo/repo/.github/workflows/triage.yml@refs/heads/main"}
    )
    github.runs = [now - timedelta(minutes=2)]

    result = make_gate(github, now).evaluate(run_ctx, AgentDefinition(name="triage", rate_limit_minutes=5))

    assert github.run_queries == ["triage.yml"]
    assert not result.should_run
