"""Background port-forward tunnels.

Tunnels are kubectl port-forward processes that outlive the CLI. Each one is
tracked by a small JSON record keyed by cluster name and local port, so a
later invocation can tell whether the tunnel is still running or stop it.

The read-check-spawn sequence is not atomic: two concurrent invocations for
the same key may both start a process. Only the last record written is
tracked.
"""

from __future__ import annotations

import json
import os
import signal
import subprocess
from collections.abc import Callable
from dataclasses import asdict, dataclass
from enum import Enum
from pathlib import Path

from ..shared.logging import get_logger
from ..shared.paths import TUNNEL_DIR, tunnel_record_file, tunnel_record_prefix
from .k8s import Kubectl
from .waiter import ConditionWaiter, PollState, WaitResult

logger = get_logger(__name__)

VERTICA_TUNNEL = "vertica"
CONSOLE_TUNNEL = "minio-console"
VERTICA_POD_SELECTOR = "app.kubernetes.io/name=vertica"
VERTICA_SQL_PORT = 5433
MINIO_CONSOLE_PORT = 9001

POD_READY_INTERVAL = 2.0
POD_READY_TIMEOUT = 300.0


@dataclass
class TunnelRecord:
    """Persisted handle of a running tunnel."""

    cluster_name: str
    local_port: int
    remote_endpoint: str
    pid: int
    name: str = ""


class TunnelStatus(Enum):
    STARTED_NEW = "started_new"
    ALREADY_RUNNING = "already_running"


@dataclass
class TunnelResult:
    """Result of ensure()."""

    status: TunnelStatus
    pid: int
    name: str
    local_port: int
    remote_endpoint: str


@dataclass
class TunnelSpec:
    """What a tunnel forwards to.

    ``target`` is a kubectl port-forward target such as ``svc/minio-console``.
    When ``pod_selector`` is set, the first ready pod matching it is used as
    the target instead, after waiting for the pods to become Ready.
    """

    name: str
    local_port: int
    remote_port: int
    target: str | None = None
    pod_selector: str | None = None
    ready_timeout: float = POD_READY_TIMEOUT


class TunnelError(Exception):
    """A tunnel could not be started."""

    def __init__(self, name: str, message: str, wait: WaitResult | None = None):
        self.name = name
        self.wait = wait
        super().__init__(f"{name}: {message}")


def is_process_alive(pid: int) -> bool:
    """Whether ``pid`` denotes a live process."""
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)  # Signal 0 = check existence
    except ProcessLookupError:
        return False
    except PermissionError:
        return True  # Exists, owned by another user
    except OSError:
        return False
    return True


class TunnelStore:
    """Keyed store of tunnel records: (cluster, local port) -> record."""

    def __init__(self, base_dir: Path | None = None):
        self.base_dir = base_dir or TUNNEL_DIR

    def path_for(self, cluster: str, port: int) -> Path:
        return tunnel_record_file(self.base_dir, cluster, port)

    def read(self, cluster: str, port: int) -> TunnelRecord | None:
        """Read a record. Corrupt records are removed and treated as absent."""
        path = self.path_for(cluster, port)
        if not path.exists():
            return None
        try:
            data = json.loads(path.read_text())
            return TunnelRecord(
                cluster_name=data["cluster_name"],
                local_port=int(data["local_port"]),
                remote_endpoint=data["remote_endpoint"],
                pid=int(data["pid"]),
                name=data.get("name", ""),
            )
        except (OSError, ValueError, KeyError, TypeError):
            logger.warning("discarding invalid tunnel record", path=str(path))
            path.unlink(missing_ok=True)
            return None

    def write(self, record: TunnelRecord) -> Path:
        """Write a record atomically."""
        path = self.path_for(record.cluster_name, record.local_port)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(".tmp")
        tmp.write_text(json.dumps(asdict(record)))
        os.replace(tmp, path)
        return path

    def delete(self, cluster: str, port: int) -> None:
        self.path_for(cluster, port).unlink(missing_ok=True)

    def ports(self, cluster: str) -> list[int]:
        """Ports with a record for ``cluster``."""
        prefix = tunnel_record_prefix(cluster)
        ports = []
        for path in self.base_dir.glob(f"{prefix}*.json"):
            port = path.name[len(prefix) : -len(".json")]
            if port.isdigit():
                ports.append(int(port))
        return sorted(ports)


class TunnelTracker:
    """Start, check and stop tunnels for a cluster."""

    def __init__(
        self,
        kubectl: Kubectl,
        store: TunnelStore | None = None,
        waiter: ConditionWaiter | None = None,
        is_alive: Callable[[int], bool] = is_process_alive,
    ):
        self.kubectl = kubectl
        self.store = store or TunnelStore()
        self.waiter = waiter or ConditionWaiter()
        self.is_alive = is_alive
        # Forwards spawned by this tracker, polled so exited ones are reaped
        self._spawned: dict[int, subprocess.Popen] = {}

    def running(self, cluster: str, port: int) -> TunnelRecord | None:
        """The live record for a key, or None. Stale records are removed."""
        record = self.store.read(cluster, port)
        if record is None:
            return None
        if self._alive(record.pid):
            return record
        logger.info("removing stale tunnel record", cluster=cluster, port=port, pid=record.pid)
        self.store.delete(cluster, port)
        return None

    def ensure(self, cluster: str, spec: TunnelSpec) -> TunnelResult:
        """Start the tunnel unless a live one is already recorded.

        Raises:
            TunnelError: If the target never becomes ready or kubectl
                cannot be started.
        """
        existing = self.running(cluster, spec.local_port)
        if existing:
            return TunnelResult(
                TunnelStatus.ALREADY_RUNNING,
                existing.pid,
                spec.name,
                spec.local_port,
                existing.remote_endpoint,
            )

        target = self._resolve_target(spec)
        remote_endpoint = f"{self.kubectl.namespace}/{target}:{spec.remote_port}"

        try:
            process = self.kubectl.port_forward(target, spec.local_port, spec.remote_port)
        except OSError as e:
            raise TunnelError(spec.name, f"failed to start port-forward: {e}") from e

        record = TunnelRecord(
            cluster_name=cluster,
            local_port=spec.local_port,
            remote_endpoint=remote_endpoint,
            pid=process.pid,
            name=spec.name,
        )
        self._spawned[process.pid] = process
        self.store.write(record)
        logger.info("tunnel started", tunnel=spec.name, port=spec.local_port, pid=process.pid)
        return TunnelResult(TunnelStatus.STARTED_NEW, process.pid, spec.name, spec.local_port, remote_endpoint)

    def _alive(self, pid: int) -> bool:
        process = self._spawned.get(pid)
        if process is not None and process.poll() is not None:
            del self._spawned[pid]
            return False
        return self.is_alive(pid)

    def _resolve_target(self, spec: TunnelSpec) -> str:
        if not spec.pod_selector:
            if not spec.target:
                raise TunnelError(spec.name, "no target configured")
            return spec.target

        def pods_ready() -> PollState:
            return PollState.SATISFIED if self.kubectl.pods_ready(spec.pod_selector) else PollState.PENDING

        wait = self.waiter.wait_until(
            pods_ready,
            interval=POD_READY_INTERVAL,
            timeout=spec.ready_timeout,
            description=f"{spec.name} pods ready",
        )
        if not wait.ok:
            raise TunnelError(spec.name, f"pods matching {spec.pod_selector} not ready", wait)

        pod = self.kubectl.first_pod(spec.pod_selector)
        if not pod:
            raise TunnelError(spec.name, f"no pod matches {spec.pod_selector}")
        return f"pod/{pod}"

    def stop(self, cluster: str, port: int) -> bool:
        """Terminate a recorded tunnel and delete its record.

        Returns:
            True if a record existed.
        """
        record = self.store.read(cluster, port)
        if record is None:
            return False
        try:
            os.kill(record.pid, signal.SIGTERM)
        except OSError:
            pass  # Already gone
        self._spawned.pop(record.pid, None)
        self.store.delete(cluster, port)
        logger.info("tunnel stopped", cluster=cluster, port=port, pid=record.pid)
        return True

    def stop_all(self, cluster: str) -> list[int]:
        """Stop every recorded tunnel for ``cluster``."""
        return [port for port in self.store.ports(cluster) if self.stop(cluster, port)]


def vertica_tunnel(local_port: int) -> TunnelSpec:
    """Tunnel to Vertica SQL on the first ready Vertica pod."""
    return TunnelSpec(
        name=VERTICA_TUNNEL,
        local_port=local_port,
        remote_port=VERTICA_SQL_PORT,
        pod_selector=VERTICA_POD_SELECTOR,
    )


def console_tunnel(local_port: int) -> TunnelSpec:
    """Tunnel to the MinIO console service."""
    return TunnelSpec(
        name=CONSOLE_TUNNEL,
        local_port=local_port,
        remote_port=MINIO_CONSOLE_PORT,
        target="svc/minio-console",
    )
