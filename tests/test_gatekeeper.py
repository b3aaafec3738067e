import io
from pathlib import Path

from rich.console import Console

from helpers import FakeVCS, make_config
from stagegate.core.context import run_context
from stagegate.core.contracts import GateState
from stagegate.core.gatekeeper import Gatekeeper, read_head

PATCH = "--- a/a.cpp\n+++ b/a.cpp\n@@ -1 +1 @@\n-\tx;\n+  x;\n"


def _keeper(tmp_path, scripts, ctx, vcs=None, overrides=None):
    config = make_config(scripts, tmp_path, overrides)
    out = io.StringIO()
    console = Console(file=out, width=200)
    return Gatekeeper(config, vcs or FakeVCS(tmp_path, {}), ctx, console), out


def test_no_artifact_is_clean(tmp_path, scripts):
    with run_context(tmp_path / "tmp") as ctx:
        keeper, out = _keeper(tmp_path, scripts, ctx)
        d = keeper.judge("reformat", None)
    assert d.state is GateState.CLEAN
    assert d.approved
    assert "comply with the Xiriar code style" in out.getvalue()


def test_patch_without_auto_apply_blocks_and_retains(tmp_path, scripts):
    with run_context(tmp_path / "tmp") as ctx:
        patch = ctx.artifact_path("reformat")
        patch.write_text(PATCH)
        keeper, out = _keeper(tmp_path, scripts, ctx)
        d = keeper.judge("reformat", patch)
    assert d.state is GateState.BLOCKED
    assert not d.approved
    assert d.artifact == patch
    assert patch.read_text() == PATCH
    assert f"git apply {patch}" in out.getvalue()


def test_patch_with_auto_apply_remediates(tmp_path, scripts):
    vcs = FakeVCS(tmp_path, {})
    with run_context(tmp_path / "tmp") as ctx:
        patch = ctx.artifact_path("reformat")
        patch.write_text(PATCH)
        keeper, out = _keeper(tmp_path, scripts, ctx, vcs, {"hooks.reformat.autoapply": "true"})
        d = keeper.judge("reformat", patch)
        assert not patch.exists()
    assert d.state is GateState.REMEDIATED
    assert [t for t, _ in vcs.applied] == ["index", "worktree"]


def test_worktree_apply_failure_is_tolerated(tmp_path, scripts):
    vcs = FakeVCS(tmp_path, {}, worktree_ok=False)
    with run_context(tmp_path / "tmp") as ctx:
        patch = ctx.artifact_path("reformat")
        patch.write_text(PATCH)
        keeper, out = _keeper(tmp_path, scripts, ctx, vcs, {"hooks.reformat.autoapply": "true"})
        d = keeper.judge("reformat", patch)
    assert d.state is GateState.REMEDIATED
    assert "working dir left unchanged" in out.getvalue()


def test_failed_index_apply_falls_through_to_blocked(tmp_path, scripts):
    vcs = FakeVCS(tmp_path, {}, apply_ok=False)
    with run_context(tmp_path / "tmp") as ctx:
        patch = ctx.artifact_path("reformat")
        patch.write_text(PATCH)
        keeper, out = _keeper(tmp_path, scripts, ctx, vcs, {"hooks.reformat.autoapply": "true"})
        d = keeper.judge("reformat", patch)
    assert d.state is GateState.BLOCKED
    assert "Failed to apply the patch!" in out.getvalue()
    assert patch.exists()


def test_report_never_auto_applied(tmp_path, scripts):
    vcs = FakeVCS(tmp_path, {})
    with run_context(tmp_path / "tmp") as ctx:
        report = ctx.artifact_path("analyze")
        report.write_text("a.c:1: warning: x\n")
        keeper, out = _keeper(tmp_path, scripts, ctx, vcs, {"hooks.reformat.autoapply": "true"})
        d = keeper.judge("analyze", report)
    assert d.state is GateState.BLOCKED
    assert vcs.applied == []
    assert f"less {report}" in out.getvalue()


def test_display_is_bounded(tmp_path, scripts):
    with run_context(tmp_path / "tmp") as ctx:
        report = ctx.artifact_path("analyze")
        report.write_text("".join(f"line {i}\n" for i in range(10)))
        keeper, out = _keeper(tmp_path, scripts, ctx, overrides={"hooks.pre-commit.maxlines": "3"})
        keeper.judge("analyze", report)
    text = out.getvalue()
    assert "line 2" in text
    assert "line 3" not in text
    assert "first 3 lines shown" in text


def test_read_head(tmp_path: Path):
    p = tmp_path / "f"
    p.write_text("a\nb\n")
    assert read_head(p, 2) == (["a", "b"], False)
    assert read_head(p, 1) == (["a"], True)
