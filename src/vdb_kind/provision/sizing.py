"""Node-count sizing from available host memory."""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path

from ..errors import InsufficientMemoryError

MEMINFO_PATH = Path("/proc/meminfo")

# Thresholds in MiB
THREE_NODE_MIN_MIB = 6144  # inclusive
SINGLE_NODE_MIN_MIB = 2048  # exclusive

_MEM_AVAILABLE_RE = re.compile(r"^MemAvailable:\s*(\d+)", re.MULTILINE)


@dataclass(frozen=True)
class SizingDecision:
    """Node count chosen for this run."""

    node_count: int
    memory_observed_mib: int


def decide_size(available_mib: int) -> SizingDecision:
    """Choose the subcluster size for the given available memory.

    Args:
        available_mib: Available memory in MiB.

    Returns:
        SizingDecision with 3 nodes at or above 6144 MiB, otherwise 1 node.

    Raises:
        InsufficientMemoryError: If 2048 MiB or less is available.
    """
    if available_mib >= THREE_NODE_MIN_MIB:
        return SizingDecision(node_count=3, memory_observed_mib=available_mib)
    if available_mib > SINGLE_NODE_MIN_MIB:
        return SizingDecision(node_count=1, memory_observed_mib=available_mib)
    raise InsufficientMemoryError(available_mib, SINGLE_NODE_MIN_MIB)


def read_available_mib(meminfo: Path = MEMINFO_PATH) -> int:
    """Read MemAvailable from /proc/meminfo, in MiB.

    Raises:
        OSError: If the file cannot be read.
        ValueError: If MemAvailable is missing.
    """
    match = _MEM_AVAILABLE_RE.search(meminfo.read_text())
    if not match:
        raise ValueError(f"MemAvailable not found in {meminfo}")
    return int(match.group(1)) // 1024
