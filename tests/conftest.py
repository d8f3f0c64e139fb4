"""Shared test fixtures for vdb-kind tests.

This module provides fixtures for driving the workflows without a cluster:
- FakeCluster: Answers kind, helm, kubectl and docker invocations and
  records the calls that create resources
- FakeClock: Drives ConditionWaiter without real sleeping
"""

from __future__ import annotations

import base64
import itertools
import subprocess
from collections.abc import Generator
from dataclasses import dataclass, field
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from vdb_kind.config import ClusterConfig
from vdb_kind.provision import ConditionWaiter, Kubectl, TunnelStore, TunnelTracker, UpWorkflow

# =============================================================================
# Fake clock
# =============================================================================


class FakeClock:
    """Monotonic clock advanced only by sleep()."""

    def __init__(self):
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


# =============================================================================
# Fake cluster
# =============================================================================


def _completed(args: list[str], returncode: int = 0, stdout: str = "", stderr: str = ""):
    return subprocess.CompletedProcess(args, returncode, stdout, stderr)


def _strip_flags(args: list[str], flags: tuple[str, ...]) -> list[str]:
    """Remove ``--flag value`` pairs."""
    out = []
    skip = False
    for arg in args:
        if skip:
            skip = False
            continue
        if arg in flags:
            skip = True
            continue
        out.append(arg)
    return out


@dataclass
class FakeCluster:
    """In-memory stand-in for kind, helm, kubectl and docker.

    ``created`` records only calls that create a resource: kind clusters,
    helm installs, secrets and manifest applies.
    """

    clusters: set[str] = field(default_factory=set)
    contexts: set[str] = field(default_factory=set)
    releases: set[str] = field(default_factory=set)
    secrets: set[str] = field(default_factory=set)
    pods: dict[str, str] = field(default_factory=dict)
    verticadb: bool = False
    crd_installed: bool = False

    # Behaviour knobs
    probe_phase: str = "Succeeded"
    rollouts_complete: bool = True
    webhook_ip: str = "10.244.0.7"
    db_condition: str = "True"
    vertica_pod: str | None = "vdb-sc-0"
    apply_fails: bool = False
    docker_running: bool = True
    control_plane_mounts: str = '"Destination": "/var/local-path-provisioner"'
    minio_user: str = "minio"
    minio_password: str = "minio123"
    pvcs: list[tuple[str, str, str]] = field(default_factory=list)
    nodes_output: str = " node_name | node_state\n v_vdb_node0001 | UP\n"

    calls: list[list[str]] = field(default_factory=list)
    created: list[tuple[str, ...]] = field(default_factory=list)
    port_forwards: list[list[str]] = field(default_factory=list)
    live_pids: set[int] = field(default_factory=set)
    pid_factory: object = None

    def __post_init__(self):
        counter = itertools.count(40000)
        if self.pid_factory is None:
            self.pid_factory = lambda: next(counter)

    # -- subprocess entry points ---------------------------------------------

    def run(self, args, **kwargs):
        args = list(args)
        self.calls.append(args)
        tool = args[0]
        if tool == "kind":
            return self._kind(args)
        if tool == "helm":
            return self._helm(args, _strip_flags(args[1:], ("--kube-context", "--namespace")))
        if tool == "kubectl":
            return self._kubectl(args, _strip_flags(args[1:], ("--context", "-n")))
        if tool == "docker":
            return self._docker(args)
        return _completed(args, 127, "", f"{tool} not found")

    def popen(self, args, **kwargs):
        args = list(args)
        self.port_forwards.append(args)
        pid = self.pid_factory()
        self.live_pids.add(pid)
        process = MagicMock()
        process.pid = pid
        process.poll.side_effect = lambda: None if pid in self.live_pids else 0
        return process

    def is_alive(self, pid: int) -> bool:
        return pid in self.live_pids

    def count_calls(self, *prefix: str) -> int:
        """Number of calls whose argv starts with ``prefix`` after the tool's global flags."""
        count = 0
        for call in self.calls:
            stripped = [call[0]] + _strip_flags(call[1:], ("--context", "-n", "--kube-context", "--namespace"))
            if stripped[: len(prefix)] == list(prefix):
                count += 1
        return count

    # -- tools ---------------------------------------------------------------

    def _kind(self, args):
        sub = args[1:]
        if sub[:2] == ["get", "clusters"]:
            return _completed(args, 0, "".join(f"{c}\n" for c in sorted(self.clusters)))
        if sub[:2] == ["create", "cluster"]:
            name = sub[sub.index("--name") + 1]
            self.clusters.add(name)
            self.contexts.add(f"kind-{name}")
            self.created.append(("kind", name))
            return _completed(args)
        if sub[:2] == ["delete", "cluster"]:
            name = sub[sub.index("--name") + 1]
            self.clusters.discard(name)
            self.releases.clear()
            self.secrets.clear()
            self.verticadb = False
            self.crd_installed = False
            return _completed(args, 0, "", f'Deleting cluster "{name}" ...')
        return _completed(args, 1, "", "unknown kind command")

    def _helm(self, args, sub):
        if sub[:1] == ["repo"]:
            return _completed(args)
        if sub[:1] == ["status"]:
            if sub[1] in self.releases:
                return _completed(args, 0, f"NAME: {sub[1]}\nSTATUS: deployed\n")
            return _completed(args, 1, "", "Error: release: not found")
        if sub[:2] == ["upgrade", "--install"]:
            release = sub[2]
            self.releases.add(release)
            if release == "vertica-operator":
                self.crd_installed = True
            self.created.append(("helm", release))
            return _completed(args)
        if sub[:1] == ["uninstall"]:
            if sub[1] not in self.releases:
                return _completed(args, 1, "", f"Error: uninstall: Release not loaded: {sub[1]}: release: not found")
            self.releases.discard(sub[1])
            return _completed(args, 0, f'release "{sub[1]}" uninstalled\n')
        return _completed(args, 1, "", "unknown helm command")

    def _docker(self, args):
        if args[1] == "info":
            if self.docker_running:
                return _completed(args, 0, "Server Version: 27.0.0\n")
            return _completed(args, 1, "", "Cannot connect to the Docker daemon")
        if args[1] == "inspect":
            if args[2].removesuffix("-control-plane") in self.clusters:
                return _completed(args, 0, f"[{{{self.control_plane_mounts}}}]")
            return _completed(args, 1, "", f"Error: No such object: {args[2]}")
        return _completed(args, 1, "", "unknown docker command")

    def _kubectl(self, args, sub):
        verb = sub[0]
        if verb == "config":
            return self._kubeconfig(args, sub[1:])
        if verb == "rollout":
            deployment = sub[2].split("/", 1)[1]
            if self.rollouts_complete:
                return _completed(args, 0, f'deployment "{deployment}" successfully rolled out\n')
            return _completed(args, 0, f'Waiting for deployment "{deployment}" rollout to finish\n')
        if verb == "run":
            self.pods[sub[1]] = self.probe_phase
            return _completed(args, 0, f"pod/{sub[1]} created\n")
        if verb == "delete":
            if sub[1] == "pod" and len(sub) > 2:
                self.pods.pop(sub[2], None)
            if sub[1] == "verticadb" or sub[1] == "-f":
                self.verticadb = False
            return _completed(args)
        if verb == "apply":
            if self.apply_fails:
                return _completed(args, 1, "", 'admission webhook "vverticadb.kb.io" denied the request')
            self.verticadb = True
            self.created.append(("apply", sub[2]))
            return _completed(args, 0, "verticadb.vertica.com/vdb created\n")
        if verb == "create":
            self.secrets.add(sub[3])
            self.created.append(("secret", sub[3]))
            return _completed(args, 0, f"secret/{sub[3]} created\n")
        if verb == "exec":
            return _completed(args, 0, self.nodes_output)
        if verb == "describe":
            return _completed(args, 0, f"Name: {sub[2] if len(sub) > 2 else sub[1]}\n")
        if verb == "logs":
            return _completed(args, 0, f"log line from {sub[1]}\n")
        if verb == "get":
            return self._get(args, sub[1:])
        return _completed(args, 1, "", "unknown kubectl command")

    def _kubeconfig(self, args, sub):
        if sub[0] == "get-contexts":
            return _completed(args, 0, "".join(f"{c}\n" for c in sorted(self.contexts)))
        if sub[0] == "use-context":
            if sub[1] in self.contexts:
                return _completed(args, 0, f'Switched to context "{sub[1]}".\n')
            return _completed(args, 1, "", f'error: no context exists with the name: "{sub[1]}"')
        if sub[0] == "delete-context":
            if sub[1] in self.contexts:
                self.contexts.discard(sub[1])
                return _completed(args)
            return _completed(args, 1, "", f"error: cannot delete context {sub[1]}, not in kubeconfig")
        return _completed(args)

    def _get(self, args, sub):
        kind = sub[0]
        jsonpath = next((a[len("jsonpath=") :] for a in sub if a.startswith("jsonpath=")), None)
        as_name = "-o" in sub and sub[sub.index("-o") + 1] == "name"
        name = sub[1] if len(sub) > 1 and not sub[1].startswith("-") else None

        if kind == "crd":
            return _completed(args, 0 if self.crd_installed else 1, "", "" if self.crd_installed else "NotFound")
        if kind == "secret":
            if as_name:
                return self._found(args, name in self.secrets, f"secret/{name}")
            values = {"root-user": self.minio_user, "root-password": self.minio_password}
            key = jsonpath[len("{.data.") : -1]
            if "minio" in self.releases and key in values:
                return _completed(args, 0, base64.b64encode(values[key].encode()).decode())
            return _completed(args, 1, "", f'Error from server (NotFound): secrets "{name}" not found')
        if kind == "verticadb":
            if as_name:
                return self._found(args, self.verticadb, f"verticadb.vertica.com/{name}")
            if not self.verticadb:
                return _completed(args, 1, "", "NotFound")
            return _completed(args, 0, self.db_condition)
        if kind == "pod" and name:
            return self._found(args, name in self.pods, self.pods.get(name, ""))
        if kind == "pod":
            return _completed(args, 0, self.vertica_pod or "")
        if kind == "pods" and jsonpath:
            return _completed(args, 0, "True\n" if self.vertica_pod else "")
        if kind == "endpoints":
            return _completed(args, 0, self.webhook_ip)
        if kind == "pvc" and "-A" in sub:
            return _completed(args, 0, "".join(f"{ns}/{claim}\t{vol}\n" for ns, claim, vol in self.pvcs))
        return _completed(args, 0, f"{kind} listing\n")

    def _found(self, args, present: bool, stdout: str):
        if present:
            return _completed(args, 0, stdout)
        return _completed(args, 1, "", "Error from server (NotFound)")


@pytest.fixture
def fake_cluster() -> Generator[FakeCluster, None, None]:
    """Patch subprocess so every tool invocation hits a FakeCluster."""
    cluster = FakeCluster()
    with patch("subprocess.run", side_effect=cluster.run), patch("subprocess.Popen", side_effect=cluster.popen):
        yield cluster


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def config(tmp_path: Path) -> ClusterConfig:
    """Default config with every host path under tmp_path."""
    return ClusterConfig(
        host_root=tmp_path / "host",
        state_dir=tmp_path / "state",
        tunnel_dir=tmp_path / "tunnels",
    )


@pytest.fixture
def make_workflow(fake_cluster: FakeCluster, clock: FakeClock):
    """Build an UpWorkflow wired to the fake cluster and clock.

    Returns (workflow, echoed lines).
    """

    def _make(config: ClusterConfig, available_mib: int = 8192, preflight=None):
        lines: list[str] = []
        kubectl = Kubectl(config.namespace, config.kube_context)
        waiter = ConditionWaiter(sleep=clock.sleep, clock=clock)
        tracker = TunnelTracker(kubectl, TunnelStore(config.tunnel_dir), waiter, is_alive=fake_cluster.is_alive)
        workflow = UpWorkflow(
            config,
            kubectl=kubectl,
            waiter=waiter,
            tunnels=tracker,
            memory_probe=lambda: available_mib,
            preflight=preflight or (lambda: None),
            echo=lines.append,
        )
        return workflow, lines

    return _make
