"""Readable host-path symlinks for persistent volume claims.

Links live under <host_root>/links and are named <namespace>_<claim>. They
are a convenience only and are rebuilt from scratch on every successful up.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from ..shared.logging import get_logger
from .k8s import Kubectl

logger = get_logger(__name__)


@dataclass
class LinkEntry:
    """One claim mapped to its host directory."""

    namespace: str
    claim: str
    link: Path
    target: Path


class PathMapper:
    """Map PVCs to their directories under the host PV root."""

    def __init__(self, kubectl: Kubectl, pv_dir: Path, links_dir: Path):
        self.kubectl = kubectl
        self.pv_dir = pv_dir
        self.links_dir = links_dir

    def _clear_links(self) -> None:
        for entry in self.links_dir.iterdir():
            if entry.is_symlink():
                entry.unlink()

    def rebuild(self) -> list[LinkEntry]:
        """Recreate all links.

        Claims without a bound volume, or whose volume has no directory
        under the PV root, are skipped.

        Returns:
            The links created, in claim listing order.
        """
        self.links_dir.mkdir(parents=True, exist_ok=True)
        self._clear_links()

        entries = []
        for namespace, claim, volume in self.kubectl.list_pvc_volumes():
            if not volume:
                continue
            target = self.pv_dir / volume
            if not target.exists():
                logger.debug("no host directory for volume", claim=f"{namespace}/{claim}", volume=volume)
                continue

            link = self.links_dir / f"{namespace}_{claim}"
            if link.exists() and not link.is_symlink():
                logger.warning("not replacing non-link path", path=str(link))
                continue
            link.unlink(missing_ok=True)
            link.symlink_to(target)
            entries.append(LinkEntry(namespace, claim, link, target))

        return entries
