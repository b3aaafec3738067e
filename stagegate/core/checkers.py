from __future__ import annotations

import logging
import re
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

from stagegate.core.contracts import CheckerSpec
from stagegate.core.errors import CheckerError

logger = logging.getLogger(__name__)

PATH_PLACEHOLDER = "{path}"
_PLACEHOLDER = re.compile(r"\{(config|language|standard|path)\}")


@dataclass(frozen=True)
class CheckerRun:
    argv: tuple[str, ...]
    returncode: int
    stdout: bytes
    stderr: bytes

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def diagnostics(self) -> str:
        """Analyzer findings: stderr first, then anything printed on stdout."""
        return (self.stderr + self.stdout).decode("utf-8", errors="replace")


def _fill(arg: str, fields: dict[str, str]) -> str:
    # Only the known placeholders are replaced; other braces (cppcheck's
    # --template={file}:{line}, ...) reach the tool untouched.
    return _PLACEHOLDER.sub(lambda m: fields[m.group(1)], arg)


def build_argv(spec: CheckerSpec, paths: Sequence[str]) -> list[str]:
    fields = {
        "config": spec.config or "",
        "language": spec.language,
        "standard": spec.language,
        "path": paths[0] if len(paths) == 1 else "",
    }
    argv = [spec.binary]
    for arg in spec.args:
        if arg == PATH_PLACEHOLDER:
            argv.extend(paths)
        else:
            argv.append(_fill(arg, fields))
    return argv


def _run(spec: CheckerSpec, paths: Sequence[str], cwd: Path) -> CheckerRun:
    argv = build_argv(spec, paths)
    logger.debug("%s: %s", spec.name, argv)
    try:
        proc = subprocess.run(argv, cwd=str(cwd), capture_output=True)
    except OSError as e:
        raise CheckerError(
            code="E_CHECKER_EXEC",
            message=f"cannot run {spec.name} ({spec.binary}): {e}",
            path=paths[0] if len(paths) == 1 else None,
        ) from e
    return CheckerRun(
        argv=tuple(argv),
        returncode=proc.returncode,
        stdout=proc.stdout,
        stderr=proc.stderr,
    )


def format_file(spec: CheckerSpec, path: str, cwd: Path) -> CheckerRun:
    """Run the reformatter on one file; the reformatted text is on stdout."""
    return _run(spec, [path], cwd)


def analyze(spec: CheckerSpec, paths: Sequence[str], cwd: Path) -> CheckerRun:
    """Run the analyzer on `paths`; findings come back as `diagnostics`."""
    if not paths:
        return CheckerRun(argv=(), returncode=0, stdout=b"", stderr=b"")
    return _run(spec, paths, cwd)
