from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Optional, Sequence

from stagegate.core.changeset import matches_extension
from stagegate.core.checkers import CheckerRun, analyze, format_file
from stagegate.core.contracts import CheckerSpec, FailurePolicy, Partition, ToolResult
from stagegate.core.diffs import encode_content, quote_path, rewrite_headers, unified_diff
from stagegate.core.errors import CheckerError
from stagegate.core.snapshot import Snapshot

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WorkerTask:
    partition: Partition
    checker: CheckerSpec
    snapshot: Snapshot
    partial: Path
    on_failure: FailurePolicy = "record"


@dataclass(frozen=True)
class WorkerOutcome:
    index: int
    checked: int
    findings: int
    # None when nothing was found: no partial file is created at all.
    partial: Optional[Path] = None


def _failed(task: WorkerTask, path: str, run: CheckerRun) -> bool:
    """Apply the checker-failure policy. True means: drop this file's output."""
    if run.ok or task.on_failure == "record":
        return False
    if task.on_failure == "fatal":
        raise CheckerError(
            code="E_CHECKER_FAILED",
            message=f"{task.checker.name} exited with {run.returncode}: "
            + run.stderr.decode("utf-8", errors="replace").strip(),
            path=path,
        )
    logger.warning("%s exited with %d on %s; output ignored", task.checker.name, run.returncode, path)
    return True


def _reformat_one(task: WorkerTask, path: str) -> Optional[ToolResult]:
    run = format_file(task.checker, path, cwd=task.snapshot.root)
    if _failed(task, path, run):
        return None
    label = quote_path(path)
    raw = unified_diff(task.snapshot.read_bytes(path), run.stdout, source_label=label)
    if not raw:
        return None
    return ToolResult(
        kind="reformat",
        path=path,
        partition=task.partition.index,
        text=rewrite_headers(raw, source_label=label, path=path),
    )


def _analyze_one(task: WorkerTask, path: str) -> Optional[ToolResult]:
    run = analyze(task.checker, [path], cwd=task.snapshot.root)
    if _failed(task, path, run):
        return None
    text = run.diagnostics
    if not text.strip():
        return None
    if not text.endswith("\n"):
        text += "\n"
    return ToolResult(
        kind="analyze",
        path=path,
        partition=task.partition.index,
        text=f"==> {path} <==\n{text}",
    )


def check_partition(task: WorkerTask) -> WorkerOutcome:
    """CheckWorker: run one checker over one partition, in order.

    Findings are appended to this worker's own partial file, which is opened
    lazily so that "nothing found" leaves no file behind.
    """
    check_one = _reformat_one if task.checker.kind == "reformat" else _analyze_one
    checked = 0
    findings = 0
    out: Optional[BinaryIO] = None
    try:
        for path in task.partition.paths:
            if not matches_extension(path, task.checker.extensions):
                continue
            checked += 1
            logger.info("Checking file: %s", path)
            result = check_one(task, path)
            if result is None:
                continue
            if out is None:
                out = task.partial.open("ab")
            out.write(encode_content(result.text))
            findings += 1
    finally:
        if out is not None:
            out.close()

    return WorkerOutcome(
        index=task.partition.index,
        checked=checked,
        findings=findings,
        partial=task.partial if findings else None,
    )


def run_workers(tasks: Sequence[WorkerTask]) -> list[WorkerOutcome]:
    """Run every task on its own thread and block until all have finished.

    There is no cancellation: a failing worker does not stop the others.
    Once everyone is done, the first failure in partition order is raised.
    """
    if not tasks:
        return []
    with ThreadPoolExecutor(max_workers=len(tasks)) as ex:
        futures = [ex.submit(check_partition, t) for t in tasks]
        wait(futures)

    for f in futures:
        exc = f.exception()
        if exc is not None:
            raise exc
    return [f.result() for f in futures]
