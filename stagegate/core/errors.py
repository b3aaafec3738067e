from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class GateError(Exception):
    """Base error envelope. The CLI prints these; raw exceptions are wrapped before they leave core."""

    code: str
    message: str
    path: Optional[str] = None

    def __str__(self) -> str:
        loc = self.path if self.path else "<stagegate>"
        return f"{loc}: {self.code}: {self.message}"


class ConfigError(GateError):
    pass


class ResolutionError(GateError):
    pass


class SnapshotError(GateError):
    pass


class CheckerError(GateError):
    pass


class AssemblyError(GateError):
    pass


class RemediationError(GateError):
    pass
