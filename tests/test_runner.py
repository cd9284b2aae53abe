import shutil
import subprocess

import pytest

from repo_agents.runner import AgentRunner, changed_paths, parse_metrics


def test_parse_metrics():
    metrics = parse_metrics('{"total_cost_usd": 0.31, "duration_ms": 5400, "num_turns": 6, "result": "done"}')
    assert metrics.cost_usd == 0.31
    assert metrics.duration_ms == 5400
    assert metrics.turns == 6


def test_parse_metrics_ignores_plain_text():
    metrics = parse_metrics("all done!")
    assert metrics.cost_usd is None
    assert metrics.turns is None


def test_runner_reports_failure(tmp_path, monkeypatch):
    def fake_run(cmd, **kwargs):
        if cmd[0] == "git":
            return subprocess.CompletedProcess(cmd, 0, stdout=" M docs/a.md\n?? new.txt\n", stderr="")
        assert kwargs["input"] == "the prompt"
        return subprocess.CompletedProcess(cmd, 2, stdout="", stderr="boom")

    monkeypatch.setattr(subprocess, "run", fake_run)
    result = AgentRunner(["agent"], tmp_path).run("the prompt")

    assert not result.success
    assert result.exit_code == 2
    assert result.error == "boom"
    assert result.changed_files == ["docs/a.md", "new.txt"]


def test_runner_missing_binary(tmp_path):
    result = AgentRunner(["definitely-not-an-agent-binary"], tmp_path).run("x")
    assert not result.success
    assert "could not start" in result.error


def test_changed_paths_handles_renames(tmp_path, monkeypatch):
    def fake_run(cmd, **kwargs):
        return subprocess.CompletedProcess(cmd, 0, stdout="R  old.md -> docs/new.md\n", stderr="")

    monkeypatch.setattr(subprocess, "run", fake_run)
    assert changed_paths(tmp_path) == ["docs/new.md"]


def git_checkout(path):
    subprocess.run(["git", "init", "-q", str(path)], check=True)
    subprocess.run(["git", "-C", str(path), "config", "user.email", "ci@example.com"], check=True)
    subprocess.run(["git", "-C", str(path), "config", "user.name", "ci"], check=True)
    (path / "README.md").write_text("hello\n")
    subprocess.run(["git", "-C", str(path), "add", "README.md"], check=True)
    subprocess.run(["git", "-C", str(path), "commit", "-q", "-m", "init"], check=True)
    return path


@pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")
def test_changed_paths_skips_own_state_dir(tmp_path):
    repo = git_checkout(tmp_path / "checkout")
    (repo / ".repo-agents" / "logs").mkdir(parents=True)
    (repo / ".repo-agents" / "logs" / "events.jsonl").write_text("{}\n")
    (repo / "docs").mkdir()
    (repo / "docs" / "a.md").write_text("new page\n")
    (repo / "README.md").write_text("changed\n")

    assert sorted(changed_paths(repo)) == ["README.md", "docs/a.md"]


@pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")
def test_changed_paths_extra_ignore_prefix(tmp_path):
    repo = git_checkout(tmp_path / "checkout")
    (repo / "audit").mkdir()
    (repo / "audit" / "audit-1.json").write_text("{}")

    assert changed_paths(repo, ignore=(".repo-agents/", "audit/")) == []
    assert changed_paths(repo) == ["audit/audit-1.json"]
