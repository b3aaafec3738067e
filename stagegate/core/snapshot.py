from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Sequence

from stagegate.core.errors import GateError, SnapshotError
from stagegate.core.vcs import VCS

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Snapshot:
    """Staged content of a change set, materialized under `root`.

    Checkers run with `root` as their working directory, so a repository
    relative path names the staged copy both for us and for them.
    """

    root: Path
    paths: tuple[str, ...]

    def path_for(self, rel_path: str) -> Path:
        return self.root / _safe_relpath(rel_path)

    def read_bytes(self, rel_path: str) -> bytes:
        return self.path_for(rel_path).read_bytes()


def _safe_relpath(rel_path: str) -> PurePosixPath:
    p = PurePosixPath(rel_path)
    if not rel_path or p.is_absolute() or ".." in p.parts:
        raise SnapshotError(
            code="E_SNAPSHOT_UNSAFE_PATH",
            message="path escapes the snapshot root",
            path=rel_path,
        )
    return p


def materialize_snapshot(vcs: VCS, change_set: Sequence[str], root: Path) -> Snapshot:
    """Write the staged blob of every path under a fresh `root`.

    An empty change set is a no-op: nothing is created. The caller owns
    `root` (it lives inside the RunContext work dir) and removes it, also
    when this raises halfway.
    """
    if not change_set:
        return Snapshot(root=root, paths=())

    try:
        root.mkdir(parents=True, exist_ok=False)
    except OSError as e:
        raise SnapshotError(code="E_SNAPSHOT_FAILED", message=str(e), path=str(root)) from e

    logger.info("Dumping %d staged file(s) to %s", len(change_set), root)
    for rel_path in change_set:
        target = root / _safe_relpath(rel_path)
        try:
            data = vcs.materialize_staged(rel_path)
        except GateError:
            raise
        except Exception as e:
            raise SnapshotError(code="E_SNAPSHOT_FAILED", message=str(e), path=rel_path) from e
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as e:
            raise SnapshotError(code="E_SNAPSHOT_FAILED", message=str(e), path=rel_path) from e

    return Snapshot(root=root, paths=tuple(change_set))
