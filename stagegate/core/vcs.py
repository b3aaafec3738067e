from __future__ import annotations

import os
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol

from stagegate.core.contracts import ApplyTarget
from stagegate.core.errors import RemediationError, ResolutionError, SnapshotError


# Tree object of an empty repository; the diff base for the initial commit.
EMPTY_TREE = "4b825dc642cb6eb9a060e54bf8d69288fbee4904"


class VCS(Protocol):
    root: Path

    def base_ref(self) -> str: ...

    def is_merge_in_progress(self) -> bool: ...

    def resolve_change_set(self, base_ref: str) -> list[str]: ...

    def materialize_staged(self, path: str) -> bytes: ...

    def apply_patch(self, patch: Path, target: ApplyTarget) -> None: ...

    def get_config(self, key: str, default: str, kind: Optional[str] = None) -> str: ...


def _decode(raw: bytes) -> str:
    return raw.decode("utf-8", errors="surrogateescape")


def find_repo_root(start: str | None = None) -> Path:
    """Walk up from `start` (default: cwd) to the first directory holding `.git`."""
    p = Path(start or os.getcwd()).resolve()
    for parent in [p] + list(p.parents):
        if (parent / ".git").exists():
            return parent
    raise ResolutionError(
        code="E_RESOLVE_NO_REPO",
        message="not inside a git working copy",
        path=str(p),
    )


@dataclass(frozen=True)
class GitRepo:
    root: Path

    def _git(self, *args: str, input: bytes | None = None) -> subprocess.CompletedProcess[bytes]:
        return subprocess.run(
            ["git", *args],
            cwd=str(self.root),
            input=input,
            capture_output=True,
        )

    def has_head(self) -> bool:
        try:
            proc = self._git("rev-parse", "--verify", "--quiet", "HEAD")
        except OSError:
            return False
        return proc.returncode == 0

    def base_ref(self) -> str:
        return "HEAD" if self.has_head() else EMPTY_TREE

    def git_path(self, name: str) -> Path:
        proc = self._git("rev-parse", "--git-path", name)
        if proc.returncode != 0:
            return self.root / ".git" / name
        return self.root / _decode(proc.stdout).strip()

    def is_merge_in_progress(self) -> bool:
        return self.git_path("MERGE_MSG").is_file()

    def resolve_change_set(self, base_ref: str) -> list[str]:
        """Paths added/copied/modified/renamed in the index relative to `base_ref`.

        -z keeps names unquoted, so paths with quotes or newlines survive intact.
        """
        try:
            proc = self._git(
                "diff-index", "--cached", "--diff-filter=ACMR", "--name-only", "-z", base_ref, "--"
            )
        except OSError as e:
            raise ResolutionError(code="E_RESOLVE_FAILED", message=str(e)) from e
        if proc.returncode != 0:
            raise ResolutionError(
                code="E_RESOLVE_FAILED",
                message=_decode(proc.stderr).strip() or "git diff-index failed; is this a git repo?",
                path=str(self.root),
            )
        return [p for p in _decode(proc.stdout).split("\0") if p]

    def materialize_staged(self, path: str) -> bytes:
        """Raw blob content of `path` at stage 0 of the index (never the working tree)."""
        try:
            proc = self._git("cat-file", "blob", f":0:{path}")
        except OSError as e:
            raise SnapshotError(code="E_SNAPSHOT_FAILED", message=str(e), path=path) from e
        if proc.returncode != 0:
            raise SnapshotError(
                code="E_SNAPSHOT_FAILED",
                message=_decode(proc.stderr).strip() or "git cat-file failed",
                path=path,
            )
        return proc.stdout

    def apply_patch(self, patch: Path, target: ApplyTarget) -> None:
        args = ["apply"]
        if target == "index":
            args.append("--cached")
        args.append(str(patch))
        try:
            proc = self._git(*args)
        except OSError as e:
            raise RemediationError(code="E_APPLY_FAILED", message=str(e), path=str(patch)) from e
        if proc.returncode != 0:
            raise RemediationError(
                code="E_APPLY_FAILED",
                message=f"git apply ({target}) failed: " + _decode(proc.stderr).strip(),
                path=str(patch),
            )

    def get_config(self, key: str, default: str, kind: Optional[str] = None) -> str:
        """`git config [--<kind>] --get <key>`, or `default` when unset or unreadable."""
        args = ["config"]
        if kind:
            args.append(f"--{kind}")
        args.extend(["--get", key])
        try:
            proc = self._git(*args)
        except OSError:
            return default
        if proc.returncode != 0:
            return default
        return _decode(proc.stdout).rstrip("\n")
