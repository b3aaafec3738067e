from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from stagegate.core.checkers import format_file
from stagegate.core.contracts import CheckerSpec
from stagegate.core.diffs import quote_path, rewrite_headers, unified_diff
from stagegate.core.errors import CheckerError


@dataclass(frozen=True)
class SelftestResult:
    ok: bool
    patch: str


def run_selftest(
    spec: CheckerSpec,
    sample: Path,
    reference: Path,
    *,
    label: Optional[str] = None,
) -> SelftestResult:
    """Reformat `sample` and compare the output with `reference`.

    Used to check a reformatter configuration against known-good output.
    The returned patch turns the reference into the current output; its
    headers name `label` (default: the reference path as given), so it can
    be applied with `git apply` to update the reference.
    """
    run = format_file(spec, sample.name, cwd=sample.parent)
    if not run.ok:
        raise CheckerError(
            code="E_CHECKER_FAILED",
            message=f"{spec.name} exited with {run.returncode}: "
            + run.stderr.decode("utf-8", errors="replace").strip(),
            path=str(sample),
        )

    source = quote_path(str(reference))
    raw = unified_diff(reference.read_bytes(), run.stdout, source_label=source)
    name = label or reference.as_posix()
    return SelftestResult(ok=not raw, patch=rewrite_headers(raw, source_label=source, path=name))
