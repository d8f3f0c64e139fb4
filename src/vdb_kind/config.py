"""Cluster configuration.

Supplied once per invocation and never mutated. Values come from CLI flags,
environment variables (VDB_KIND_<FIELD>), the YAML config file
(~/.vdb-kind/config.yaml), then defaults, in that order of precedence.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from .shared.paths import (
    CONFIG_FILE,
    LINKS_SUBDIR,
    PV_SUBDIR,
    TUNNEL_DIR,
    VDB_KIND_DIR,
    applied_manifest_file,
    kind_config_file,
    manifest_file,
)

# Default values
DEFAULT_CLUSTER = "vertica-local"
DEFAULT_NAMESPACE = "default"
DEFAULT_DB_NAME = "vdb"
DEFAULT_IMAGE = "opentext/vertica-k8s:25.3.0-0"
DEFAULT_BUCKET = "vertica-communal"
DEFAULT_MINIO_USER = "minio"
DEFAULT_MINIO_PASSWORD = "minio123"
DEFAULT_HOST_ROOT = Path("/opt/vertica-kind")
DEFAULT_VERTICA_PORT = 5433
DEFAULT_CONSOLE_PORT = 9001

ENV_PREFIX = "VDB_KIND_"

_INT_FIELDS = {"vertica_port", "console_port"}
_PATH_FIELDS = {"license_file", "host_root", "state_dir", "tunnel_dir"}


@dataclass(frozen=True)
class ClusterConfig:
    """Configuration for one provisioning or teardown run."""

    cluster: str = DEFAULT_CLUSTER
    namespace: str = DEFAULT_NAMESPACE
    db_name: str = DEFAULT_DB_NAME
    image: str = DEFAULT_IMAGE
    bucket: str = DEFAULT_BUCKET
    minio_user: str = DEFAULT_MINIO_USER
    minio_password: str = DEFAULT_MINIO_PASSWORD
    dbadmin_password: str | None = None
    license_file: Path | None = None
    host_root: Path = DEFAULT_HOST_ROOT
    vertica_port: int = DEFAULT_VERTICA_PORT
    console_port: int = DEFAULT_CONSOLE_PORT
    state_dir: Path = VDB_KIND_DIR
    tunnel_dir: Path = TUNNEL_DIR

    # Where each value came from; not part of equality
    sources: dict[str, str] = field(default_factory=dict, compare=False, repr=False)

    @property
    def kube_context(self) -> str:
        return f"kind-{self.cluster}"

    @property
    def pv_dir(self) -> Path:
        return self.host_root / PV_SUBDIR

    @property
    def links_dir(self) -> Path:
        return self.host_root / LINKS_SUBDIR

    @property
    def manifest_path(self) -> Path:
        return manifest_file(self.state_dir, self.cluster)

    @property
    def applied_manifest_path(self) -> Path:
        return applied_manifest_file(self.state_dir, self.cluster)

    @property
    def kind_config_path(self) -> Path:
        return kind_config_file(self.state_dir, self.cluster)

    @property
    def has_license(self) -> bool:
        return self.license_file is not None

    @property
    def has_password(self) -> bool:
        return bool(self.dbadmin_password)

    def get_source(self, key: str) -> str:
        """Get the source of a config value."""
        return self.sources.get(key, "default")


def config_field_names() -> list[str]:
    """Names of the user-settable fields."""
    return [f.name for f in fields(ClusterConfig) if f.name != "sources"]


def _coerce(key: str, value: Any) -> Any:
    if value is None:
        return None
    if key in _INT_FIELDS:
        return int(value)
    if key in _PATH_FIELDS:
        return Path(str(value)).expanduser()
    return str(value)


def _read_config_file(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError):
        return {}  # Ignore config file errors, use defaults
    return data if isinstance(data, dict) else {}


def load_config(
    overrides: dict[str, Any] | None = None,
    config_path: Path | None = None,
) -> ClusterConfig:
    """Load cluster configuration.

    Precedence (highest to lowest):
    1. Explicit overrides (CLI flags); None values are ignored
    2. Environment variables (VDB_KIND_CLUSTER, VDB_KIND_HOST_ROOT, ...)
    3. Config file (~/.vdb-kind/config.yaml)
    4. Defaults

    Args:
        overrides: Values from the command line.
        config_path: Alternate config file.

    Returns:
        ClusterConfig with values and sources.

    Raises:
        ValueError: If a numeric field cannot be parsed.
    """
    names = config_field_names()
    values: dict[str, Any] = {}
    sources: dict[str, str] = {name: "default" for name in names}

    file_config = _read_config_file(config_path or CONFIG_FILE)
    for name in names:
        if file_config.get(name) is not None:
            values[name] = _coerce(name, file_config[name])
            sources[name] = "config file"

    for name in names:
        env_value = os.environ.get(f"{ENV_PREFIX}{name.upper()}")
        if env_value:
            values[name] = _coerce(name, env_value)
            sources[name] = "environment"

    for name, value in (overrides or {}).items():
        if name in names and value is not None:
            values[name] = _coerce(name, value)
            sources[name] = "command line"

    return ClusterConfig(**values, sources=sources)
