"""Manifest generation for the VerticaDB resource and the kind cluster.

Manifests are built as structured values and serialized with PyYAML at the
boundary. Optional secret references are either present or absent, never
empty.
"""

from __future__ import annotations

import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from ..config import ClusterConfig
from .sizing import SizingDecision

# Secret names referenced by the VerticaDB spec
S3_CREDS_SECRET = "s3-creds"
LICENSE_SECRET = "vertica-license"
PASSWORD_SECRET = "su-passwd"

COMMUNAL_ENDPOINT = "http://minio:9000"
COMMUNAL_REGION = "us-east-1"
SUBCLUSTER_NAME = "sc"
LOCAL_DATA_PATH = "/data"

VDB_ANNOTATIONS = {
    "vertica.com/include-uid-in-path": "true",
    "vertica.com/vcluster-ops": "true",
    "vertica.com/k-safety": "0",
}

# kind node paths the local-path provisioner writes PV data to
PROVISIONER_PATHS = ("/var/local-path-provisioner", "/opt/local-path-provisioner")


@dataclass(frozen=True)
class VerticaDBManifest:
    """The VerticaDB custom resource."""

    db_name: str
    image: str
    communal_path: str
    subcluster_size: int
    communal_endpoint: str = COMMUNAL_ENDPOINT
    credential_secret: str = S3_CREDS_SECRET
    region: str = COMMUNAL_REGION
    subcluster_name: str = SUBCLUSTER_NAME
    data_path: str = LOCAL_DATA_PATH
    license_secret: str | None = None
    password_secret: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Build the resource document. Absent secrets produce no key."""
        spec: dict[str, Any] = {"image": self.image, "dbName": self.db_name}
        if self.license_secret is not None:
            spec["licenseSecret"] = self.license_secret
        if self.password_secret is not None:
            spec["passwordSecret"] = self.password_secret
        spec["communal"] = {
            "endpoint": self.communal_endpoint,
            "path": self.communal_path,
            "credentialSecret": self.credential_secret,
            "region": self.region,
        }
        spec["subclusters"] = [{"name": self.subcluster_name, "size": self.subcluster_size}]
        spec["local"] = {"dataPath": self.data_path}

        return {
            "apiVersion": "vertica.com/v1",
            "kind": "VerticaDB",
            "metadata": {"name": self.db_name, "annotations": dict(VDB_ANNOTATIONS)},
            "spec": spec,
        }


def build_manifest(
    config: ClusterConfig,
    sizing: SizingDecision,
    has_license: bool,
    has_password: bool,
) -> VerticaDBManifest:
    """Build the VerticaDB manifest for this run.

    Args:
        config: Cluster configuration.
        sizing: Node count decision.
        has_license: Reference the license secret.
        has_password: Reference the dbadmin password secret.

    Returns:
        VerticaDBManifest. Identical inputs give identical manifests.
    """
    return VerticaDBManifest(
        db_name=config.db_name,
        image=config.image,
        communal_path=f"s3://{config.bucket}/{config.db_name}",
        subcluster_size=sizing.node_count,
        license_secret=LICENSE_SECRET if has_license else None,
        password_secret=PASSWORD_SECRET if has_password else None,
    )


def render_manifest(manifest: VerticaDBManifest) -> str:
    """Serialize a manifest to YAML."""
    return yaml.safe_dump(manifest.to_dict(), default_flow_style=False, sort_keys=False)


def write_manifest(manifest: VerticaDBManifest, path: Path, applied_path: Path | None = None) -> bool:
    """Write the manifest, overwriting any previous one.

    Returns:
        True if the content differs from the last applied copy at
        ``applied_path`` (or from the previous file when no copy is kept).
    """
    content = render_manifest(manifest)
    baseline = applied_path or path
    previous = baseline.read_text() if baseline.exists() else None
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    return content != previous


def record_applied(path: Path, applied_path: Path) -> None:
    """Keep a copy of ``path`` as the manifest the cluster last accepted."""
    applied_path.parent.mkdir(parents=True, exist_ok=True)
    shutil.copyfile(path, applied_path)


def build_kind_config(pv_dir: Path) -> dict[str, Any]:
    """Build a kind cluster config that mounts ``pv_dir`` for PV data."""
    return {
        "kind": "Cluster",
        "apiVersion": "kind.x-k8s.io/v1alpha4",
        "nodes": [
            {
                "role": "control-plane",
                "extraMounts": [
                    {"hostPath": str(pv_dir), "containerPath": container_path}
                    for container_path in PROVISIONER_PATHS
                ],
            }
        ],
    }


def write_kind_config(pv_dir: Path, path: Path) -> Path:
    """Write the kind cluster config file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        yaml.safe_dump(build_kind_config(pv_dir), f, default_flow_style=False, sort_keys=False)
    return path
