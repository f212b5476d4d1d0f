"""Process memory snapshots via psutil."""

import gc
import sys

import psutil
from beartype import beartype


class ProcessMemorySnapshot:
    """Resident set size of the current process, in bytes.

    A forced snapshot runs a full ``gc.collect()`` first so the reading is a
    stable baseline; an unforced snapshot reads the process as it stands.
    """

    def __init__(self) -> None:
        self._process = psutil.Process()

    @beartype
    def current_allocated_bytes(self, force_collection: bool) -> int:
        if force_collection:
            gc.collect()
        return int(self._process.memory_info().rss)


def allocated_blocks() -> int:
    """Number of memory blocks currently allocated by the interpreter."""
    return sys.getallocatedblocks()
