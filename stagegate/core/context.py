from __future__ import annotations

import logging
import os
import re
import shutil
import tempfile
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional
from uuid import uuid4

from stagegate.core.contracts import CheckerKind

logger = logging.getLogger(__name__)

PREFIX = "stagegate"
# Work directories of aborted runs are only reclaimed once they are this old,
# so a concurrent commit's live directory is never removed.
STALE_WORKDIR_SECONDS = 3600
# stagegate-<time>-<pid>-<token>-XXXX.d
_WORKDIR_NAME = re.compile(rf"^{PREFIX}-\d+-(\d+)-[0-9a-f]{{12}}-")

_ARTIFACT_SUFFIX: dict[str, str] = {"reformat": "patch", "analyze": "report"}


def _pid_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    except OSError:
        return False
    return True


def _owner_alive(work_dir: Path) -> bool:
    """Whether the run that created `work_dir` is still running on this host."""
    m = _WORKDIR_NAME.match(work_dir.name)
    return m is not None and _pid_alive(int(m.group(1)))


def new_run_id() -> str:
    """Time + pid + random token: unique across fast or concurrent invocations."""
    return f"{int(time.time())}-{os.getpid()}-{uuid4().hex[:12]}"


class RunContext:
    """Owns every temporary artifact of one invocation.

    Layout under `base_dir`:
      stagegate-<run_id>-XXXX.d/          work dir (snapshots, partial outputs)
      stagegate-reformat-<run_id>.patch   final patch
      stagegate-analyze-<run_id>.report   final report

    The work dir is always removed on close. Final artifacts are removed too,
    unless `retain()` was called for them (they are left for the user).
    """

    def __init__(self, base_dir: Path, run_id: str, work_dir: Path) -> None:
        self.base_dir = base_dir
        self.run_id = run_id
        self.work_dir = work_dir
        self._retained: set[Path] = set()

    def snapshot_root(self, generation: int = 0) -> Path:
        return self.work_dir / f"index-{generation}"

    def partial_path(self, kind: CheckerKind, index: int) -> Path:
        return self.work_dir / f"{kind}-{index}.part"

    def artifact_path(self, kind: CheckerKind) -> Path:
        return self.base_dir / f"{PREFIX}-{kind}-{self.run_id}.{_ARTIFACT_SUFFIX[kind]}"

    def retain(self, path: Path) -> None:
        self._retained.add(path)

    @property
    def retained(self) -> list[Path]:
        return sorted(self._retained)

    def discard(self, path: Path) -> None:
        self._retained.discard(path)
        path.unlink(missing_ok=True)

    def close(self) -> None:
        shutil.rmtree(self.work_dir, ignore_errors=True)
        for kind in _ARTIFACT_SUFFIX:
            p = self.artifact_path(kind)  # type: ignore[arg-type]
            if p in self._retained:
                continue
            try:
                p.unlink(missing_ok=True)
            except OSError as e:
                logger.warning("could not remove %s: %s", p, e)


@contextmanager
def run_context(base_dir: Optional[Path] = None, run_id: Optional[str] = None) -> Iterator[RunContext]:
    """Create a RunContext and tear it down on every exit path."""
    base = Path(base_dir or tempfile.gettempdir())
    base.mkdir(parents=True, exist_ok=True)
    rid = run_id or new_run_id()
    work_dir = Path(tempfile.mkdtemp(prefix=f"{PREFIX}-{rid}-", suffix=".d", dir=str(base)))
    ctx = RunContext(base_dir=base, run_id=rid, work_dir=work_dir)
    logger.debug("run %s: work dir %s", rid, work_dir)
    try:
        yield ctx
    finally:
        ctx.close()


def clean_old_outputs(base_dir: Optional[Path] = None, *, artifacts: bool, now: Optional[float] = None) -> list[Path]:
    """Remove leftovers of earlier runs.

    Patches/reports kept for the user are removed only when `artifacts` is set.
    Work dirs are removed once older than STALE_WORKDIR_SECONDS and only when
    the process that created them (pid in the name) is gone.
    """
    base = Path(base_dir or tempfile.gettempdir())
    if not base.is_dir():
        return []
    now = time.time() if now is None else now
    removed: list[Path] = []

    for p in sorted(base.glob(f"{PREFIX}-*.d")):
        try:
            age = now - p.stat().st_mtime
        except OSError:
            continue
        if not p.is_dir() or age <= STALE_WORKDIR_SECONDS:
            continue
        if _owner_alive(p):
            # Owner still running, e.g. stuck in a checker.
            logger.debug("keeping %s: its run is still alive", p)
            continue
        shutil.rmtree(p, ignore_errors=True)
        removed.append(p)

    if artifacts:
        for kind, suffix in _ARTIFACT_SUFFIX.items():
            for p in sorted(base.glob(f"{PREFIX}-{kind}-*.{suffix}")):
                try:
                    p.unlink()
                except OSError as e:
                    logger.warning("could not remove %s: %s", p, e)
                    continue
                removed.append(p)

    return removed
