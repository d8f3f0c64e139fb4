"""vdb-kind - Local Vertica Eon clusters on kind with MinIO communal storage."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("vdb-kind")
except PackageNotFoundError:
    __version__ = "0.0.0.dev0"  # Fallback for editable installs without metadata

from .main import main

__all__ = ["main", "__version__"]
