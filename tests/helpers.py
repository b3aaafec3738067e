from __future__ import annotations

import shlex
import subprocess
import sys
from pathlib import Path
from typing import Optional

from stagegate.core.config import CONFIG_KEYS, GateConfig, build_config
from stagegate.core.errors import RemediationError, SnapshotError


# Reformatter stand-in: every leading tab becomes two spaces.
REFORMAT_SCRIPT = r'''
import sys

data = open(sys.argv[-1], "rb").read()
out = []
for line in data.split(b"\n"):
    body = line.lstrip(b"\t")
    out.append(b"  " * (len(line) - len(body)) + body)
sys.stdout.buffer.write(b"\n".join(out))
'''

# Analyzer stand-in: one warning per line mentioning TODO, on stderr.
ANALYZE_SCRIPT = r'''
import sys

for path in sys.argv[1:]:
    if path.startswith("-"):
        continue
    with open(path, encoding="utf-8") as f:
        for n, line in enumerate(f, 1):
            if "TODO" in line:
                sys.stderr.write(f"{path}:{n}: warning: unresolved TODO\n")
'''

FAILING_SCRIPT = r'''
import sys

sys.stderr.write("boom\n")
sys.exit(3)
'''


def git(repo: Path, *args: str, input: Optional[bytes] = None) -> str:
    proc = subprocess.run(["git", *args], cwd=str(repo), input=input, capture_output=True, check=True)
    return proc.stdout.decode("utf-8", errors="surrogateescape")


def config_values(scripts: dict[str, Path], overrides: Optional[dict[str, str]] = None) -> dict[str, str]:
    values = {key: default for key, (default, _) in CONFIG_KEYS.items()}
    values.update(
        {
            "hooks.uncrustify.path": sys.executable,
            "hooks.uncrustify.config": str(scripts["config"]),
            "hooks.uncrustify.args": f"{shlex.quote(str(scripts['reformat']))} {{path}}",
            "hooks.cppcheck.path": sys.executable,
            "hooks.cppcheck.args": f"{shlex.quote(str(scripts['analyze']))} {{path}}",
            "hooks.parallel": "2",
        }
    )
    values.update(overrides or {})
    return values


def make_config(scripts: dict[str, Path], tmp_path: Path, overrides: Optional[dict[str, str]] = None) -> GateConfig:
    config = build_config(config_values(scripts, overrides))
    return config.with_overrides(temp_dir=tmp_path / "tmp")


class FakeVCS:
    """In-memory VCS: a staged index (dict) and a record of applied patches."""

    def __init__(self, root: Path, staged: dict[str, bytes], *, apply_ok: bool = True, worktree_ok: bool = True):
        self.root = root
        self.staged = dict(staged)
        self.apply_ok = apply_ok
        self.worktree_ok = worktree_ok
        self.applied: list[tuple[str, str]] = []
        self.merging = False
        self.config: dict[str, str] = {}

    def base_ref(self) -> str:
        return "HEAD"

    def is_merge_in_progress(self) -> bool:
        return self.merging

    def resolve_change_set(self, base_ref: str) -> list[str]:
        return list(self.staged)

    def materialize_staged(self, path: str) -> bytes:
        if path not in self.staged:
            raise SnapshotError(code="E_SNAPSHOT_FAILED", message="not staged", path=path)
        return self.staged[path]

    def apply_patch(self, patch: Path, target: str) -> None:
        ok = self.apply_ok if target == "index" else self.worktree_ok
        if not ok:
            raise RemediationError(code="E_APPLY_FAILED", message="does not apply", path=str(patch))
        self.applied.append((target, patch.read_text(encoding="utf-8")))

    def get_config(self, key: str, default: str, kind: Optional[str] = None) -> str:
        return self.config.get(key, default)
