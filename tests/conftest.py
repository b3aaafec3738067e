from __future__ import annotations

import shutil
from pathlib import Path

import pytest

from helpers import ANALYZE_SCRIPT, FAILING_SCRIPT, REFORMAT_SCRIPT, git


@pytest.fixture
def git_repo(tmp_path: Path) -> Path:
    if shutil.which("git") is None:
        pytest.skip("git not available")
    repo = tmp_path / "repo"
    repo.mkdir()
    git(repo, "init", "-q")
    git(repo, "config", "user.email", "dev@example.com")
    git(repo, "config", "user.name", "Dev")
    git(repo, "config", "core.autocrlf", "false")
    return repo


@pytest.fixture
def scripts(tmp_path: Path) -> dict[str, Path]:
    d = tmp_path / "tools"
    d.mkdir()
    out: dict[str, Path] = {}
    for name, body in (
        ("reformat", REFORMAT_SCRIPT),
        ("analyze", ANALYZE_SCRIPT),
        ("fail", FAILING_SCRIPT),
    ):
        p = d / f"{name}.py"
        p.write_text(body, encoding="utf-8")
        out[name] = p
    cfg = d / "reformat.cfg"
    cfg.write_text("indent_columns = 2\n", encoding="utf-8")
    out["config"] = cfg
    return out
