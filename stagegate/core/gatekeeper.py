from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from rich.console import Console

from stagegate.core.config import GateConfig
from stagegate.core.context import RunContext
from stagegate.core.contracts import CheckerKind, GateDecision, GateState
from stagegate.core.errors import RemediationError
from stagegate.core.vcs import VCS

logger = logging.getLogger(__name__)

_TRANSITIONS: dict[GateState, set[GateState]] = {
    GateState.PENDING: {GateState.CLEAN, GateState.DIRTY},
    GateState.DIRTY: {GateState.REMEDIATED, GateState.BLOCKED},
}


def _advance(current: GateState, nxt: GateState) -> GateState:
    if nxt not in _TRANSITIONS.get(current, set()):
        raise RuntimeError(f"invalid gate transition {current.value} -> {nxt.value}")
    return nxt


def read_head(path: Path, max_lines: int) -> tuple[list[str], bool]:
    """First `max_lines` lines of `path` and whether anything was cut off."""
    lines: list[str] = []
    with path.open("r", encoding="utf-8", errors="replace", newline="") as f:
        for line in f:
            if len(lines) >= max_lines:
                return lines, True
            lines.append(line.rstrip("\n"))
    return lines, False


class Gatekeeper:
    """Decides what happens to the commit once a final patch/report exists."""

    def __init__(self, config: GateConfig, vcs: VCS, ctx: RunContext, console: Console) -> None:
        self.config = config
        self.vcs = vcs
        self.ctx = ctx
        self.console = console

    def judge(self, kind: CheckerKind, artifact: Optional[Path]) -> GateDecision:
        state = GateState.PENDING

        if artifact is None or not artifact.is_file() or artifact.stat().st_size == 0:
            state = _advance(state, GateState.CLEAN)
            if artifact is not None:
                self.ctx.discard(artifact)
            self._say_clean(kind)
            return GateDecision(kind=kind, state=state)

        state = _advance(state, GateState.DIRTY)
        self._show(kind, artifact)

        if kind == "reformat" and self.config.auto_apply:
            try:
                self._remediate(artifact)
            except RemediationError as e:
                logger.info("%s", e)
                self.console.print("Failed to apply the patch!")
            else:
                state = _advance(state, GateState.REMEDIATED)
                self.ctx.discard(artifact)
                self.console.print(
                    f"\nFiles in this commit patched to comply with the {self.config.company}"
                    " code style guidelines."
                )
                return GateDecision(kind=kind, state=state)

        state = _advance(state, GateState.BLOCKED)
        self.ctx.retain(artifact)
        self._say_blocked(kind, artifact)
        return GateDecision(kind=kind, state=state, artifact=artifact)

    def _remediate(self, patch: Path) -> None:
        self.console.print("\nAuto-apply enabled, trying to apply the patch ...")
        self.vcs.apply_patch(patch, "index")
        self.console.print("... patch applied.")
        # Best effort: keep the working tree in line with the index.
        try:
            self.vcs.apply_patch(patch, "worktree")
        except RemediationError as e:
            logger.debug("working tree apply failed: %s", e)
            self.console.print("(application to the working dir failed - working dir left unchanged)")

    def _show(self, kind: CheckerKind, artifact: Path) -> None:
        if kind == "reformat":
            self.console.print(
                "\nThe following differences were found between the code to commit "
                f"and the {self.config.company} code style guidelines:\n"
            )
        else:
            self.console.print(
                "\nThe following problems were reported in the code to commit "
                "by the static analysis:\n"
            )
        lines, truncated = read_head(artifact, self.config.max_lines)
        for line in lines:
            self.console.out(line, highlight=False)
        if truncated:
            self.console.print(f"\n(first {self.config.max_lines} lines shown, more output truncated)")

    def _say_clean(self, kind: CheckerKind) -> None:
        if kind == "reformat":
            self.console.print(
                f"Files in this commit comply with the {self.config.company} code style guidelines."
            )
        else:
            self.console.print("Files in this commit passed the static analysis.")

    def _say_blocked(self, kind: CheckerKind, artifact: Path) -> None:
        if kind == "reformat":
            self.console.print("\nYou can apply these changes with:")
            self.console.out(f"  git apply {artifact}", highlight=False)
            self.console.print("(needs to be called from the root directory of the repository)")
            self.console.print(
                "Aborting commit. Apply changes and commit again or skip the check with"
                " --no-verify (not recommended)."
            )
        else:
            self.console.print("\nYou can review the problems with:")
            self.console.out(f"  less {artifact}", highlight=False)
            self.console.print(
                "Aborting commit. Fix the problems and commit again or skip the check with"
                " --no-verify (not recommended)."
            )
        self.console.out(f"(remove {artifact} when done)", highlight=False)
