"""Prerequisite detection for the up workflow.

Checks that docker (CLI and daemon), kubectl, kind and helm are available.
Installing them is left to the user; failures carry install hints.
"""

from __future__ import annotations

import shutil
from dataclasses import dataclass, field
from pathlib import Path

from ..errors import MissingToolError
from .k8s import Docker

OSRELEASE_PATH = Path("/proc/sys/kernel/osrelease")

REQUIRED_TOOLS = {
    "kubectl": "https://kubernetes.io/docs/tasks/tools/",
    "kind": "https://kind.sigs.k8s.io/docs/user/quick-start/#installation",
    "helm": "https://helm.sh/docs/intro/install/",
}

WSL_DOCKER_CLI_HINT = """WSL install options:
  A) Docker Desktop (recommended)
     - Install Docker Desktop on Windows
     - Open Docker Desktop -> Settings -> Resources -> WSL integration -> enable for your Ubuntu distro

  B) Docker Engine inside WSL (requires systemd)
     Add to /etc/wsl.conf:
       [boot]
       systemd=true
     In Windows PowerShell:  wsl --shutdown
     Back in WSL:  sudo apt-get update && sudo apt-get install -y docker.io
                   sudo systemctl enable --now docker"""

DOCKER_CLI_HINT = "Please install Docker Engine: https://docs.docker.com/engine/install/"
WSL_DAEMON_HINT = (
    "Start Docker Desktop on Windows, or run: sudo systemctl start docker "
    "(if you installed Engine in WSL)"
)
DAEMON_HINT = "Start the Docker service: sudo systemctl start docker"


def is_wsl(osrelease: Path = OSRELEASE_PATH) -> bool:
    """Whether we are running under WSL."""
    try:
        return "microsoft" in osrelease.read_text().lower()
    except OSError:
        return False


@dataclass
class DockerInfo:
    """Docker runtime detection result."""

    cli_available: bool
    daemon_running: bool = False
    error: str | None = None
    hint: str | None = None


class DockerDetector:
    """Detect the Docker CLI and daemon."""

    def __init__(self, docker: Docker | None = None):
        self.docker = docker or Docker()

    def detect(self) -> DockerInfo:
        """Check for the Docker CLI and a running daemon."""
        wsl = is_wsl()
        if not shutil.which("docker"):
            return DockerInfo(
                cli_available=False,
                error="Docker CLI not found.",
                hint=WSL_DOCKER_CLI_HINT if wsl else DOCKER_CLI_HINT,
            )

        result = self.docker.info()
        if not result.ok:
            return DockerInfo(
                cli_available=True,
                daemon_running=False,
                error="Docker daemon is not running.",
                hint=WSL_DAEMON_HINT if wsl else DAEMON_HINT,
            )

        return DockerInfo(cli_available=True, daemon_running=True)


@dataclass
class ToolReport:
    """Which required tools are on PATH."""

    found: dict[str, str] = field(default_factory=dict)
    missing: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.missing


class ToolDetector:
    """Detect kubectl, kind and helm on PATH."""

    def detect(self) -> ToolReport:
        report = ToolReport()
        for tool in REQUIRED_TOOLS:
            path = shutil.which(tool)
            if path:
                report.found[tool] = path
            else:
                report.missing.append(tool)
        return report


def check_prerequisites(docker_detector: DockerDetector | None = None) -> None:
    """Verify every tool the up workflow needs.

    Raises:
        MissingToolError: For the first unavailable tool or daemon.
    """
    docker = (docker_detector or DockerDetector()).detect()
    if not docker.cli_available or not docker.daemon_running:
        raise MissingToolError("docker", f"{docker.error}\n{docker.hint}")

    tools = ToolDetector().detect()
    if not tools.ok:
        tool = tools.missing[0]
        raise MissingToolError(tool, f"Install {tool}: {REQUIRED_TOOLS[tool]}")
