from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Sequence

from stagegate.core.errors import AssemblyError

logger = logging.getLogger(__name__)


def assemble_outputs(partials: Sequence[Path], dest: Path) -> Optional[Path]:
    """Concatenate partial outputs, in the given (partition) order, into `dest`.

    Partitions are contiguous slices of the change set, so partition order is
    also change-set order. A missing partial contributes nothing; an
    unreadable one is logged and treated the same way. Returns `dest`, or
    None (and no file) when everything was empty.
    """
    written = 0
    out = None
    try:
        for part in partials:
            try:
                data = part.read_bytes()
            except FileNotFoundError:
                continue
            except OSError as e:
                err = AssemblyError(code="E_ASSEMBLY_UNREADABLE", message=str(e), path=str(part))
                logger.warning("%s (treated as empty)", err)
                continue
            if not data:
                continue
            if out is None:
                out = dest.open("wb")
            out.write(data)
            written += len(data)
    finally:
        if out is not None:
            out.close()

    for part in partials:
        try:
            part.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("could not remove %s: %s", part, e)

    return dest if written else None
