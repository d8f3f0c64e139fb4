"""Path management for vdb-kind.

Well-known locations for local state: the CLI config file, rendered
manifests, and tunnel records.
"""

import tempfile
from pathlib import Path

# Base directory for vdb-kind state
VDB_KIND_DIR = Path.home() / ".vdb-kind"

# CLI config file
CONFIG_FILE = VDB_KIND_DIR / "config.yaml"

# Tunnel records must survive between invocations but not reboots
TUNNEL_DIR = Path(tempfile.gettempdir())

# Host-side layout under the storage root
PV_SUBDIR = "pv"
LINKS_SUBDIR = "links"


def cluster_state_dir(state_dir: Path, cluster: str) -> Path:
    """Directory holding generated files for one cluster."""
    return state_dir / cluster


def manifest_file(state_dir: Path, cluster: str) -> Path:
    """Path of the rendered VerticaDB manifest."""
    return cluster_state_dir(state_dir, cluster) / "verticadb.yaml"


def applied_manifest_file(state_dir: Path, cluster: str) -> Path:
    """Copy of the VerticaDB manifest as last accepted by kubectl apply."""
    return cluster_state_dir(state_dir, cluster) / "verticadb.applied.yaml"


def kind_config_file(state_dir: Path, cluster: str) -> Path:
    """Path of the rendered kind cluster config."""
    return cluster_state_dir(state_dir, cluster) / "kind-config.yaml"


def tunnel_record_prefix(cluster: str) -> str:
    """File name prefix shared by all tunnel records of ``cluster``."""
    return f"vdb-kind-pf.{cluster}."


def tunnel_record_file(tunnel_dir: Path, cluster: str, port: int) -> Path:
    """Path of the record for the tunnel on ``port`` of ``cluster``."""
    return tunnel_dir / f"{tunnel_record_prefix(cluster)}{port}.json"
