from __future__ import annotations

import logging
from typing import Callable, Iterable, Optional, Sequence

from stagegate.core.vcs import VCS

logger = logging.getLogger(__name__)

PathFilter = Callable[[str], bool]


def matches_extension(path: str, extensions: Sequence[str]) -> bool:
    """Suffix match against an allow-list. An empty list accepts everything."""
    if not extensions:
        return True
    return any(path.endswith(ext) for ext in extensions)


def extension_filter(*allow_lists: Sequence[str]) -> PathFilter:
    """Accept a path when it passes at least one allow-list."""
    lists = [tuple(a) for a in allow_lists]

    def accept(path: str) -> bool:
        return any(matches_extension(path, exts) for exts in lists)

    return accept


def _unique(paths: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    out: list[str] = []
    for p in paths:
        if p in seen:
            continue
        seen.add(p)
        out.append(p)
    return out


def resolve_change_set(vcs: VCS, base_ref: str, accept: Optional[PathFilter] = None) -> tuple[str, ...]:
    """Ordered, de-duplicated paths of the pending commit.

    Order is the VCS's. Deleted paths never appear (the VCS filters them),
    directories (submodules) are dropped, and an empty result is valid.
    """
    out: list[str] = []
    for path in _unique(vcs.resolve_change_set(base_ref)):
        if (vcs.root / path).is_dir():
            logger.info("Skipping the directory: %s", path)
            continue
        if accept is not None and not accept(path):
            continue
        out.append(path)
    return tuple(out)
