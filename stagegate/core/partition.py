from __future__ import annotations

from typing import Sequence

from stagegate.core.contracts import Partition
from stagegate.core.errors import ConfigError


def partition(change_set: Sequence[str], workers: int) -> list[Partition]:
    """Split `change_set` into `workers` contiguous blocks.

    Each block takes ceil(remaining paths / remaining slots), so sizes differ
    by at most one and trailing slots are empty only when len < workers.
    """
    if workers < 1:
        raise ConfigError(
            code="E_CONFIG_PARALLEL",
            message=f"number of parallel workers must be >= 1, got {workers}",
            path="hooks.parallel",
        )

    out: list[Partition] = []
    left = len(change_set)
    first = 0
    for i in range(workers):
        slots = workers - i
        block = (left + slots - 1) // slots
        out.append(Partition(index=i, paths=tuple(change_set[first : first + block])))
        first += block
        left -= block
    return out
