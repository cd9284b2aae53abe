"""
repo-agents Controller

Runs the stages in strict order and always finishes with the audit:

  gate -> context -> execution -> outputs -> audit (finally)

It never talks to the model and never decides what to write. It wires the
stages together, keeps their status, and hands everything to the audit.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from loguru import logger

from repo_agents.audit import AuditAggregator
from repo_agents.audit_logger import AuditLogger
from repo_agents.collector import ArtifactCollector
from repo_agents.config_loader import AgentDefinition, OutputConstraint, RepoAgentsConfig, load_config
from repo_agents.context import ContextAssembler
from repo_agents.event_bus import EventBus, EventType
from repo_agents.gate import AuthorizationGate, GateResult
from repo_agents.github import GitHubClient
from repo_agents.ledger import ErrorKind, ErrorLedger
from repo_agents.models import AuditRecord, ExecutionMetrics, RunContext, StageStatus
from repo_agents.outputs import OutputHandler
from repo_agents.outputs.files import UpdateFileHandler
from repo_agents.outputs.registry import CapabilityRegistry, UnknownCapabilityError
from repo_agents.runner import STATE_DIR, AgentRunner, ExecutionResult
from repo_agents.validator import Batch, BatchValidator

STAGES = ("gate", "context", "execution", "outputs")


@dataclass
class RunState:
    """What the audit needs, filled in as stages complete."""
    stages: dict[str, StageStatus] = field(default_factory=lambda: {s: "skipped" for s in STAGES})
    ledger: ErrorLedger = field(default_factory=ErrorLedger)
    gate_reasons: list[str] = field(default_factory=list)
    committed: dict[str, int] = field(default_factory=dict)
    metrics: ExecutionMetrics | None = None


class Pipeline:
    """
    One agent, one run.

    Every collaborator can be injected so tests can swap in fakes; by default
    they are built from the merged config.
    """

    def __init__(
        self,
        agent: AgentDefinition,
        github: GitHubClient,
        repo_path: Path | None = None,
        config: RepoAgentsConfig | None = None,
        runner: AgentRunner | None = None,
        gate: AuthorizationGate | None = None,
        auditor: AuditAggregator | None = None,
        bus: EventBus | None = None,
        env: dict[str, str] | None = None,
    ):
        self.agent = agent
        self.github = github
        self.repo_path = (repo_path or Path.cwd()).resolve()
        self.config = config or load_config(self.repo_path)
        self.env = os.environ if env is None else env

        self.bus = bus or EventBus()
        self._audit_log = AuditLogger(
            str(Path(self.config.audit.log_dir) / "events.jsonl"), self.bus
        )

        self.registry = CapabilityRegistry(
            github, self.config.outputs_dir, skip_unknown=self.config.compat.skip_unknown_outputs
        )
        self.collector = ArtifactCollector(self.config.outputs_dir)
        self.validator = BatchValidator()
        self.assembler = ContextAssembler(github)
        self.gate = gate or AuthorizationGate(github, env=self.env)
        self.runner = runner or AgentRunner(
            self.config.execution.command,
            self.repo_path,
            self.config.execution.timeout_seconds,
            ignore=self.ignored_paths,
        )
        self.auditor = auditor or AuditAggregator(github, self.config.audit, bus=self.bus, env=self.env)

    @property
    def ignored_paths(self) -> tuple[str, ...]:
        """Checkout paths written by the pipeline itself, never by the agent."""
        paths = [STATE_DIR]
        log_dir = Path(self.config.audit.log_dir).resolve()
        try:
            inside = log_dir.relative_to(self.repo_path).as_posix()
        except ValueError:
            inside = None
        if inside and inside != ".":
            paths.append(inside.rstrip("/") + "/")
        return tuple(paths)

    # -----------------------------------------------------------------------
    # Full run
    # -----------------------------------------------------------------------

    def run(self, run: RunContext, collected_inputs: str | None = None) -> AuditRecord:
        """Execute every stage. The audit runs exactly once, whatever happens."""
        state = RunState()
        try:
            self._execute(run, state, collected_inputs)
        finally:
            record = self.auditor.finalize(
                run, state.stages, state.ledger, state.gate_reasons, state.committed, state.metrics
            )
        return record

    def _execute(self, run: RunContext, state: RunState, collected_inputs: str | None) -> None:
        handlers = self._load_handlers(state.ledger)
        if handlers is None:
            return

        gate = self._stage(state.stages, "gate", lambda: self.preflight(run))
        if gate is None:
            return
        if not gate.should_run:
            state.stages["gate"] = "failure"
            state.gate_reasons = gate.reasons
            logger.warning(f"[PIPELINE] Gate failed for {self.agent.name}; remaining stages skipped")
            return

        prompt = self._stage(state.stages, "context", lambda: self.prompt(run, handlers, collected_inputs))
        if prompt is None:
            return

        result: ExecutionResult | None = self._stage(state.stages, "execution", lambda: self.runner.run(prompt))
        if result is None:
            return
        state.metrics = result.metrics
        if not result.success:
            state.stages["execution"] = "failure"
            return

        applied = self._stage(
            state.stages, "outputs", lambda: self.apply_outputs(run, handlers, result.changed_files)
        )
        if applied is not None:
            ledger, state.committed = applied
            state.ledger.extend(ledger)
            if ledger:
                state.stages["outputs"] = "failure"

    # -----------------------------------------------------------------------
    # Individual stages (also used directly by the CLI)
    # -----------------------------------------------------------------------

    def preflight(self, run: RunContext) -> GateResult:
        return self.gate.evaluate(run, self.agent)

    def prompt(
        self,
        run: RunContext,
        handlers: list[tuple[OutputHandler, OutputConstraint]] | None = None,
        collected_inputs: str | None = None,
    ) -> str:
        if handlers is None:
            handlers = self.registry.load(self.agent)
        context = self.assembler.assemble(run, handlers, collected_inputs)
        return self.assembler.build_prompt(context, self.agent, handlers)

    def apply_outputs(
        self,
        run: RunContext,
        handlers: list[tuple[OutputHandler, OutputConstraint]] | None = None,
        changed_files: list[str] | None = None,
    ) -> tuple[ErrorLedger, dict[str, int]]:
        """Collect, validate and commit every declared capability."""
        if handlers is None:
            handlers = self.registry.load(self.agent)

        ledger = ErrorLedger()
        batches = []
        for handler, constraint in handlers:
            if isinstance(handler, UpdateFileHandler):
                self._check_changed_files(handler, changed_files or [], ledger)
                continue
            if handler.artifact_driven:
                artifacts = self.collector.collect(handler.name.value)
                batches.append(Batch(handler, constraint, artifacts))

        committed: dict[str, int] = {}
        for result in self.validator.run_all(batches, run):
            ledger.extend(result.ledger)
            if result.committed:
                committed[result.capability] = result.committed
            self.bus.emit(
                EventType.CAPABILITY_APPLIED,
                "outputs",
                {
                    "capability": result.capability,
                    "discovered": result.discovered,
                    "committed": result.committed,
                    "errors": len(result.ledger),
                },
            )
        return ledger, committed

    # -----------------------------------------------------------------------

    def _stage(self, stages: dict[str, StageStatus], name: str, call: Callable):
        """Run one stage; any exception marks it failed and returns None."""
        self.bus.emit(EventType.STAGE_STARTED, name, {"agent": self.agent.name})
        try:
            value = call()
        except Exception as e:
            logger.exception(f"[PIPELINE] Stage '{name}' crashed: {e}")
            stages[name] = "failure"
            self.bus.emit(EventType.STAGE_FAILED, name, {"error": str(e)})
            return None
        stages[name] = "success"
        self.bus.emit(EventType.STAGE_COMPLETE, name)
        return value

    def _load_handlers(self, ledger: ErrorLedger) -> list[tuple[OutputHandler, OutputConstraint]] | None:
        try:
            return self.registry.load(self.agent)
        except UnknownCapabilityError as e:
            logger.error(f"[PIPELINE] {e}")
            ledger.add("configuration", str(e), kind=ErrorKind.CONFIGURATION)
            return None

    @staticmethod
    def _check_changed_files(handler: UpdateFileHandler, changed_files: list[str], ledger: ErrorLedger) -> None:
        capability = handler.name.value
        for path in handler.disallowed(changed_files):
            ledger.add(capability, "File is outside the allowed paths", path, ErrorKind.CONSTRAINT)
        if changed_files:
            logger.info(f"[OUTPUTS] {capability}: {len(changed_files)} changed file(s) checked")
