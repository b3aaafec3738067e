from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from rich.console import Console

from stagegate.core.assemble import assemble_outputs
from stagegate.core.changeset import extension_filter, resolve_change_set
from stagegate.core.config import GateConfig
from stagegate.core.context import RunContext, clean_old_outputs, run_context
from stagegate.core.contracts import CheckerSpec, GateDecision, GateState, Partition, PipelineResult
from stagegate.core.gatekeeper import Gatekeeper
from stagegate.core.partition import partition
from stagegate.core.snapshot import Snapshot, materialize_snapshot
from stagegate.core.vcs import VCS
from stagegate.core.worker import WorkerTask, run_workers

logger = logging.getLogger(__name__)


def fan_out(
    ctx: RunContext,
    checker: CheckerSpec,
    partitions: list[Partition],
    snapshot: Snapshot,
    config: GateConfig,
) -> Optional[Path]:
    """Run `checker` over all partitions in parallel and assemble the result file."""
    tasks = [
        WorkerTask(
            partition=p,
            checker=checker,
            snapshot=snapshot,
            partial=ctx.partial_path(checker.kind, p.index),
            on_failure=config.on_failure,
        )
        for p in partitions
    ]
    outcomes = run_workers(tasks)
    for o in outcomes:
        logger.debug("%s worker %d: %d checked, %d finding(s)", checker.name, o.index, o.checked, o.findings)
    return assemble_outputs(
        [ctx.partial_path(checker.kind, p.index) for p in partitions],
        ctx.artifact_path(checker.kind),
    )


def run_pipeline(vcs: VCS, config: GateConfig, console: Console) -> PipelineResult:
    """Resolve, snapshot, partition, fan out, assemble and judge.

    Checkers run in order (reformatter, then analyzer); the first one that is
    not approved ends the run, so style problems are reported before the
    slower analysis is attempted.
    """
    console.print(f"Starting the {config.company} pre-commit check - please wait ...")

    if vcs.is_merge_in_progress():
        if config.skip_merge:
            console.print("    > merge detected\n... check skipped.")
            return PipelineResult(ok=True, change_set=(), decisions=[], notes="merge skipped")
        console.print("    > merge detected      (the check can take more time)")

    checkers = config.checkers()
    if not checkers:
        return PipelineResult(ok=True, change_set=(), decisions=[], notes="no checkers enabled")

    change_set = resolve_change_set(
        vcs, vcs.base_ref(), accept=extension_filter(*(c.extensions for c in checkers))
    )
    logger.info("change set: %d path(s)", len(change_set))

    clean_old_outputs(config.temp_dir, artifacts=config.cleanup)

    decisions: list[GateDecision] = []
    with run_context(config.temp_dir) as ctx:
        if change_set:
            console.print("Dumping the current commit index to the mirror location ...")
        snapshot = materialize_snapshot(vcs, change_set, ctx.snapshot_root(0))
        partitions = partition(change_set, config.parallel)
        keeper = Gatekeeper(config, vcs, ctx, console)

        for checker in checkers:
            if change_set:
                console.print(f"\nPerforming the {checker.name} {checker.kind} check in {config.parallel} worker(s) ...")
            artifact = fan_out(ctx, checker, partitions, snapshot, config)
            decision = keeper.judge(checker.kind, artifact)
            decisions.append(decision)
            if not decision.approved:
                break
            if decision.state is GateState.REMEDIATED:
                # The index changed under us; later checkers must see the patched content.
                snapshot = materialize_snapshot(vcs, change_set, ctx.snapshot_root(len(decisions)))

    ok = all(d.approved for d in decisions)
    return PipelineResult(ok=ok, change_set=change_set, decisions=decisions)
