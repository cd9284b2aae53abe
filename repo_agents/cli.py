"""
repo-agents CLI

One command per pipeline stage, plus the whole thing:

  repo-agents preflight --agent <file>   (gate only, sets should-run)
  repo-agents context   --agent <file>   (print the prompt the agent gets)
  repo-agents outputs   --agent <file>   (validate and commit artifacts)
  repo-agents run       --agent <file>   (gate -> context -> agent -> outputs -> audit)

Plus:
  - repo-agents status  (credentials, tools, effective config)
"""

from __future__ import annotations

import os
import shutil
from pathlib import Path
from typing import Optional

import typer
from dotenv import load_dotenv
from loguru import logger
from pydantic import ValidationError
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from repo_agents.config_loader import AgentDefinition, load_agent, load_config, validate_api_keys
from repo_agents.controller import Pipeline
from repo_agents.github import GitHubClient
from repo_agents.identity import BANNER, __codename__, __tagline__, __version__
from repo_agents.models import AuditRecord, RunContext
from repo_agents.outputs.registry import UnknownCapabilityError
from repo_agents.runner import changed_paths

# Load .env from current directory
load_dotenv()

app = typer.Typer(
    name="repo-agents",
    help=f"{__codename__} — {__tagline__}",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

console = Console()


def version_callback(value: bool):
    if value:
        console.print(f"{__codename__} v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        callback=version_callback,
        is_eager=True,
        help="Show the version and exit.",
    ),
):
    pass


# ---------------------------------------------------------------------------
# Banner
# ---------------------------------------------------------------------------


def _print_banner():
    console.print(f"[bright_green]{BANNER}[/]")
    console.print(f"  [dim]v{__version__} — {__tagline__}[/]\n")


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

AgentOption = typer.Option(..., "--agent", "-a", help="Path to the agent definition YAML")
RepoOption = typer.Option(Path("."), "--repo", "-r", help="Path to the repository checkout")
VerboseOption = typer.Option(False, "--verbose", "-v", help="Enable debug logging")
SubjectOption = typer.Option(None, "--subject", "-s", help="Issue or PR number, overriding the event payload")


@app.command()
def preflight(
    agent: Path = AgentOption,
    repo: Path = RepoOption,
    subject: Optional[int] = SubjectOption,
    verbose: bool = VerboseOption,
):
    """Run the authorization gate and report whether the agent should run."""
    _configure_logging(verbose)
    pipeline, run_ctx = _build(agent, repo, subject)

    result = pipeline.preflight(run_ctx)
    _write_output("should-run", "true" if result.should_run else "false")

    if result.should_run:
        console.print("[green]✓ All validation checks passed[/]")
        return
    for reason in result.reasons:
        console.print(f"[yellow]✗ {reason}[/]")


@app.command()
def context(
    agent: Path = AgentOption,
    repo: Path = RepoOption,
    subject: Optional[int] = SubjectOption,
    inputs: Optional[Path] = typer.Option(None, "--inputs", "-i", help="File with collected inputs"),
    verbose: bool = VerboseOption,
):
    """Print the prompt the agent would receive."""
    _configure_logging(verbose)
    pipeline, run_ctx = _build(agent, repo, subject)
    try:
        prompt = pipeline.prompt(run_ctx, collected_inputs=_read_inputs(inputs))
    except UnknownCapabilityError as e:
        console.print(f"[red]{e}[/]")
        raise typer.Exit(1)
    # raw text, no rich markup
    typer.echo(prompt)


@app.command()
def outputs(
    agent: Path = AgentOption,
    repo: Path = RepoOption,
    subject: Optional[int] = SubjectOption,
    verbose: bool = VerboseOption,
):
    """Validate and commit the artifacts the agent left behind."""
    _configure_logging(verbose)
    pipeline, run_ctx = _build(agent, repo, subject)
    try:
        changed = changed_paths(pipeline.repo_path, pipeline.ignored_paths)
        ledger, committed = pipeline.apply_outputs(run_ctx, changed_files=changed)
    except UnknownCapabilityError as e:
        console.print(f"[red]{e}[/]")
        raise typer.Exit(1)

    if committed:
        table = Table(title="Committed", border_style="green")
        table.add_column("Output")
        table.add_column("Count", justify="right")
        for capability, count in committed.items():
            table.add_row(capability, str(count))
        console.print(table)

    if ledger:
        console.print(Panel(ledger.render(), title=f"✗ {len(ledger)} error(s)", border_style="red"))
        raise typer.Exit(1)
    console.print("[green]✓ Outputs applied[/]")


@app.command()
def run(
    agent: Path = AgentOption,
    repo: Path = RepoOption,
    subject: Optional[int] = SubjectOption,
    inputs: Optional[Path] = typer.Option(None, "--inputs", "-i", help="File with collected inputs"),
    verbose: bool = VerboseOption,
):
    """Run the full pipeline for one agent."""
    _print_banner()
    _configure_logging(verbose)
    pipeline, run_ctx = _build(agent, repo, subject)

    record = pipeline.run(run_ctx, collected_inputs=_read_inputs(inputs))
    _print_record(record)
    if record.status != "success":
        raise typer.Exit(1)


@app.command()
def status(
    repo: Optional[Path] = typer.Option(None, "--repo", "-r"),
):
    """Check credentials, tools and configuration."""
    _print_banner()

    keys = validate_api_keys()
    key_table = Table(title="Agent Credentials", border_style="cyan")
    key_table.add_column("Variable")
    key_table.add_column("Status")
    for key, available in keys.items():
        status_str = "[green]✓ Available[/]" if available else "[red]✗ Missing[/]"
        key_table.add_row(key, status_str)
    console.print(key_table)

    tools_table = Table(title="System Tools", border_style="cyan")
    tools_table.add_column("Tool")
    tools_table.add_column("Status")
    for tool in ["git", "gh", "claude"]:
        found = shutil.which(tool)
        s = f"[green]✓ {found}[/]" if found else "[dim]✗ Not found[/]"
        tools_table.add_row(tool, s)
    console.print(tools_table)

    if repo:
        config = load_config(repo.resolve())
        console.print("\n[bold]Configuration:[/]")
        console.print(f"  Outputs dir:    {config.outputs_dir}")
        console.print(f"  Agent command:  {' '.join(config.execution.command)}")
        console.print(f"  Failure issues: {'on' if config.audit.create_issues else 'off'}")
        console.print(f"  Audit logs:     {config.audit.log_dir}")
        if config.compat.skip_unknown_outputs:
            console.print("  [yellow]Unknown outputs are skipped (compat mode)[/]")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _build(agent_path: Path, repo: Path, subject: int | None = None) -> tuple[Pipeline, RunContext]:
    agent = _load_agent(agent_path)
    repo = repo.resolve()
    if not repo.exists():
        console.print(f"[red]Repository not found: {repo}[/]")
        raise typer.Exit(1)

    run_ctx = RunContext.from_env(agent_name=agent.name)
    if subject is not None:
        run_ctx = run_ctx.model_copy(update={"subject_number": subject})
    if not run_ctx.repository:
        console.print("[red]GITHUB_REPOSITORY is not set[/]")
        raise typer.Exit(1)

    github = GitHubClient(run_ctx.repository)
    return Pipeline(agent, github, repo_path=repo, config=load_config(repo)), run_ctx


def _load_agent(path: Path) -> AgentDefinition:
    if not path.exists():
        console.print(f"[red]Agent definition not found: {path}[/]")
        raise typer.Exit(1)
    try:
        return load_agent(path)
    except ValidationError as e:
        console.print(f"[red]Invalid agent definition {path}:[/]\n{e}")
        raise typer.Exit(1)


def _read_inputs(path: Path | None) -> str | None:
    if path is None:
        return None
    if not path.exists():
        console.print(f"[red]Inputs file not found: {path}[/]")
        raise typer.Exit(1)
    return path.read_text(encoding="utf-8")


def _write_output(name: str, value: str) -> None:
    """Append a step output for GitHub Actions, when running there."""
    output_path = os.environ.get("GITHUB_OUTPUT")
    if not output_path:
        return
    with open(output_path, "a", encoding="utf-8") as f:
        f.write(f"{name}={value}\n")


def _print_record(record: AuditRecord) -> None:
    table = Table(title="Stages", border_style="cyan")
    table.add_column("Stage")
    table.add_column("Result")
    colors = {"success": "green", "failure": "red", "skipped": "dim"}
    for stage, result in record.stages.items():
        table.add_row(stage, f"[{colors.get(result, 'dim')}]{result}[/]")
    console.print(table)

    for reason in record.gate_reasons:
        console.print(f"  [yellow]✗ {reason}[/]")
    for entry in record.errors:
        console.print(f"  [red]{entry.render()}[/]", highlight=False)

    color = "green" if record.status == "success" else "red"
    console.print(f"\n[bold {color}]Status: {record.status}[/]")
    if record.ticket_url:
        console.print(f"  Failure issue: {record.ticket_url}")


def _configure_logging(verbose: bool) -> None:
    logger.remove()
    if verbose:
        logger.add(
            lambda msg: console.print(f"[dim]{msg}[/]", highlight=False),
            level="DEBUG",
            format="{time:HH:mm:ss} | {level:<7} | {message}",
        )
    else:
        logger.add(
            lambda msg: console.print(f"[dim]{msg}[/]", highlight=False),
            level="WARNING",
            format="{message}",
        )


# ---------------------------------------------------------------------------
# Entry
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    app()
