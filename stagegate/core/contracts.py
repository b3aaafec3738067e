from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Literal, Optional


CheckerKind = Literal["reformat", "analyze"]
FailurePolicy = Literal["record", "skip", "fatal"]
ApplyTarget = Literal["index", "worktree"]

FAILURE_POLICIES: tuple[str, ...] = ("record", "skip", "fatal")


@dataclass(frozen=True)
class CheckerSpec:
    """How to invoke one external checker.

    `args` is an argv template (everything after the binary). Placeholders:
    {config}, {language}, {standard} and {path}. A lone "{path}" argument is
    expanded to every path when the checker is called on several files.
    """

    kind: CheckerKind
    name: str
    binary: str
    args: tuple[str, ...]
    config: Optional[str] = None
    # Reformatter language tag (CPP, C, ...) or analyzer standard (c++03, ...).
    language: str = ""
    extensions: tuple[str, ...] = ()
    enabled: bool = True


@dataclass(frozen=True)
class Partition:
    index: int
    paths: tuple[str, ...]


@dataclass(frozen=True)
class ToolResult:
    kind: CheckerKind
    path: str
    partition: int
    text: str


class GateState(str, Enum):
    PENDING = "pending"
    CLEAN = "clean"
    DIRTY = "dirty"
    REMEDIATED = "remediated"
    BLOCKED = "blocked"


@dataclass(frozen=True)
class GateDecision:
    kind: CheckerKind
    state: GateState
    # Set only when the artifact stays on disk for the user (BLOCKED).
    artifact: Optional[Path] = None

    @property
    def approved(self) -> bool:
        return self.state in (GateState.CLEAN, GateState.REMEDIATED)


@dataclass(frozen=True)
class PipelineResult:
    ok: bool
    change_set: tuple[str, ...]
    decisions: list[GateDecision]
    notes: Optional[str] = None

    @property
    def exit_code(self) -> int:
        return 0 if self.ok else 1
