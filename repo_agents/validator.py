"""
repo-agents Batch Validator

Atomic, per-capability validate-then-commit.

  Phase 1: every artifact in the batch is checked. Nothing is written.
  Phase 2: only if phase 1 recorded zero errors, artifacts are committed
           one at a time in discovery order. A failed commit is recorded
           and the loop moves on; earlier commits are not rolled back.

Capabilities are independent: each batch gets its own ledger and batches
run concurrently in a thread pool.
"""

from __future__ import annotations

import concurrent.futures
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from loguru import logger

from repo_agents.config_loader import OutputConstraint
from repo_agents.github import GitHubError
from repo_agents.ledger import ErrorKind, ErrorLedger
from repo_agents.models import OutputArtifact, RunContext
from repo_agents.outputs import PartialCommitError

if TYPE_CHECKING:
    from repo_agents.outputs import OutputHandler


@dataclass
class BatchResult:
    capability: str
    discovered: int = 0
    committed: int = 0
    validated: bool = False
    ledger: ErrorLedger = field(default_factory=ErrorLedger)

    @property
    def failed(self) -> bool:
        return len(self.ledger) > 0


@dataclass
class Batch:
    handler: "OutputHandler"
    constraint: OutputConstraint
    artifacts: list[OutputArtifact]


class BatchValidator:
    """Runs the two-phase protocol for one or many capabilities."""

    def __init__(self, max_workers: int = 4):
        self.max_workers = max_workers

    def run_batch(
        self,
        handler: "OutputHandler",
        constraint: OutputConstraint,
        run: RunContext,
        artifacts: list[OutputArtifact],
    ) -> BatchResult:
        capability = handler.name.value
        result = BatchResult(capability=capability, discovered=len(artifacts))
        ledger = result.ledger

        if not artifacts:
            result.validated = True
            return result

        logger.info(f"[OUTPUTS] Found {len(artifacts)} {capability} artifact(s)")

        if constraint.max is not None and len(artifacts) > constraint.max:
            ledger.add(
                capability,
                f"Too many {capability} artifacts ({len(artifacts)}). Maximum allowed: {constraint.max}",
                kind=ErrorKind.CONSTRAINT,
            )
            logger.warning(f"[OUTPUTS] {capability}: cardinality exceeded, no artifact checked")
            return result

        # --- Phase 1: validate everything ---------------------------------
        handler.begin_batch(run)
        prepared = []
        seen_ordinals: set[int | None] = set()
        for artifact in artifacts:
            if artifact.ordinal in seen_ordinals:
                ledger.add(capability, f"Duplicate ordinal {artifact.ordinal}", artifact.ref, ErrorKind.CONSTRAINT)
                continue
            seen_ordinals.add(artifact.ordinal)

            if constraint.max is not None and artifact.ordinal is not None and artifact.ordinal > constraint.max:
                ledger.add(
                    capability,
                    f"Ordinal {artifact.ordinal} exceeds maximum allowed: {constraint.max}",
                    artifact.ref,
                    ErrorKind.CONSTRAINT,
                )
                continue

            payload, problems = handler.parse(artifact)
            if problems:
                for message in problems:
                    ledger.add(capability, message, artifact.ref, ErrorKind.CONFIGURATION)
                continue

            try:
                problems = handler.check(payload, run)
                kind = ErrorKind.CONSTRAINT
            except GitHubError as e:
                problems = [f"Lookup failed during validation: {e}"]
                kind = ErrorKind.EXTERNAL
            if problems:
                for message in problems:
                    ledger.add(capability, message, artifact.ref, kind)
                continue

            logger.debug(f"[OUTPUTS] Validation passed for {artifact.ref}")
            prepared.append((artifact, payload))

        if ledger:
            logger.warning(f"[OUTPUTS] {capability}: validation failed - skipping execution (atomic operation)")
            return result

        result.validated = True

        # --- Phase 2: commit in discovery order ----------------------------
        for artifact, payload in prepared:
            try:
                summary = handler.commit(payload, run)
            except PartialCommitError as e:
                result.committed += 1
                ledger.add(capability, str(e), artifact.ref, ErrorKind.EXTERNAL)
                logger.error(f"[OUTPUTS] {capability}: {artifact.ref} only partly applied: {e}")
                continue
            except GitHubError as e:
                ledger.add(capability, f"Failed to {handler.verb}: {e}", artifact.ref, ErrorKind.EXTERNAL)
                logger.error(f"[OUTPUTS] {capability}: commit failed for {artifact.ref}: {e}")
                continue
            result.committed += 1
            logger.info(f"[OUTPUTS] {capability}: {summary}")

        return result

    def run_all(self, batches: list[Batch], run: RunContext) -> list[BatchResult]:
        """Run every capability batch concurrently. Results keep input order."""
        results: dict[str, BatchResult] = {}

        with concurrent.futures.ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            future_to_batch = {
                executor.submit(self.run_batch, b.handler, b.constraint, run, b.artifacts): b
                for b in batches
            }
            for future in concurrent.futures.as_completed(future_to_batch):
                batch = future_to_batch[future]
                capability = batch.handler.name.value
                try:
                    results[capability] = future.result()
                except Exception as e:
                    logger.exception(f"[OUTPUTS] {capability}: batch crashed")
                    crashed = BatchResult(capability=capability, discovered=len(batch.artifacts))
                    crashed.ledger.add(capability, f"Unexpected error: {e}", kind=ErrorKind.EXTERNAL)
                    results[capability] = crashed

        return [results[b.handler.name.value] for b in batches]
