"""Adapters for kubectl, helm, kind and docker.

Every call goes through run_command and returns a CommandResult (or a value
parsed from one). Nothing here raises for a failed command; the workflows
decide what is fatal.
"""

from __future__ import annotations

import base64
import binascii
import subprocess
from pathlib import Path

from ..utils import CommandResult, run_command

# Short client-side timeout for teardown calls against a possibly dead API
DELETE_REQUEST_TIMEOUT = "10s"
PROBE_REQUEST_TIMEOUT = "5s"


class Kubectl:
    """kubectl bound to a context and namespace."""

    def __init__(self, namespace: str = "default", context: str | None = None):
        """Initialize kubectl adapter.

        Args:
            namespace: Namespace for namespaced calls.
            context: kubeconfig context; current context if None.
        """
        self.namespace = namespace
        self.context = context

    def _kubectl_cmd(self, namespaced: bool = True) -> list[str]:
        """Build base kubectl command."""
        cmd = ["kubectl"]
        if self.context:
            cmd.extend(["--context", self.context])
        if namespaced:
            cmd.extend(["-n", self.namespace])
        return cmd

    def run(self, *args: str, namespaced: bool = True, timeout: float | None = None) -> CommandResult:
        """Run an arbitrary kubectl subcommand."""
        return run_command(self._kubectl_cmd(namespaced) + list(args), timeout=timeout)

    # -- reads ---------------------------------------------------------------

    def exists(self, kind: str, name: str, namespaced: bool = True) -> bool:
        """Whether a resource exists."""
        return self.run("get", kind, name, "-o", "name", namespaced=namespaced).ok

    def jsonpath(self, kind: str, name: str | None, path: str, selector: str | None = None) -> str | None:
        """Read a jsonpath expression from a resource.

        Returns:
            The stripped output, or None if the call failed.
        """
        args = ["get", kind]
        if name:
            args.append(name)
        if selector:
            args.extend(["-l", selector])
        args.extend(["-o", f"jsonpath={path}"])
        result = self.run(*args)
        if not result.ok:
            return None
        return result.stdout.strip()

    def pod_phase(self, name: str) -> str | None:
        return self.jsonpath("pod", name, "{.status.phase}")

    def secret_value(self, name: str, key: str) -> str | None:
        """Read and base64-decode one key of a secret."""
        encoded = self.jsonpath("secret", name, "{.data." + key + "}")
        if not encoded:
            return None
        try:
            return base64.b64decode(encoded).decode()
        except (binascii.Error, UnicodeDecodeError):
            return None

    def endpoint_address(self, service: str) -> str | None:
        """First ready address behind a service, if any."""
        return self.jsonpath("endpoints", service, "{.subsets[0].addresses[0].ip}") or None

    def condition_status(self, kind: str, name: str, condition: str) -> str | None:
        """Status ("True"/"False"/"Unknown") of a status condition."""
        path = "{.status.conditions[?(@.type==\"" + condition + "\")].status}"
        return self.jsonpath(kind, name, path) or None

    def rollout_complete(self, deployment: str) -> bool:
        """Non-blocking rollout status check."""
        result = self.run("rollout", "status", f"deployment/{deployment}", "--watch=false")
        return result.ok and "successfully rolled out" in result.stdout

    def pods_ready(self, selector: str) -> bool:
        """Whether at least one pod matches and all matching pods are Ready."""
        statuses = self.jsonpath(
            "pods",
            None,
            '{range .items[*]}{.status.conditions[?(@.type=="Ready")].status}{"\\n"}{end}',
            selector=selector,
        )
        if not statuses:
            return False
        lines = [line.strip() for line in statuses.splitlines() if line.strip()]
        return bool(lines) and all(line == "True" for line in lines)

    def first_pod(self, selector: str) -> str | None:
        return self.jsonpath("pod", None, "{.items[0].metadata.name}", selector=selector) or None

    def list_pvc_volumes(self) -> list[tuple[str, str, str]]:
        """List (namespace, claim, volume) for PVCs in all namespaces."""
        result = run_command(
            self._kubectl_cmd(namespaced=False)
            + [
                "get",
                "pvc",
                "-A",
                "-o",
                "jsonpath={range .items[*]}{.metadata.namespace}/{.metadata.name}"
                '{"\\t"}{.spec.volumeName}{"\\n"}{end}',
            ]
        )
        if not result.ok:
            return []

        claims = []
        for line in result.stdout.splitlines():
            if "/" not in line:
                continue
            ns_claim, _, volume = line.partition("\t")
            namespace, _, claim = ns_claim.partition("/")
            claims.append((namespace, claim, volume.strip()))
        return claims

    def crd_exists(self, name: str) -> bool:
        return self.run(
            "get", "crd", name, f"--request-timeout={PROBE_REQUEST_TIMEOUT}", namespaced=False
        ).ok

    # -- writes --------------------------------------------------------------

    def apply_file(self, path: Path) -> CommandResult:
        return self.run("apply", "-f", str(path))

    def create_secret_literals(self, name: str, data: dict[str, str]) -> CommandResult:
        args = ["create", "secret", "generic", name]
        args.extend(f"--from-literal={key}={value}" for key, value in data.items())
        return self.run(*args)

    def create_secret_file(self, name: str, key: str, path: Path) -> CommandResult:
        return self.run("create", "secret", "generic", name, f"--from-file={key}={path}")

    def run_pod(
        self,
        name: str,
        image: str,
        args: list[str],
        env: dict[str, str] | None = None,
        command: bool = False,
    ) -> CommandResult:
        """Start a one-shot pod (restart=Never)."""
        cmd = ["run", name, "--restart=Never", f"--image={image}"]
        for key, value in (env or {}).items():
            cmd.append(f"--env={key}={value}")
        if command:
            cmd.append("--command")
        cmd.append("--")
        cmd.extend(args)
        return self.run(*cmd)

    def delete(
        self,
        kind: str,
        name: str | None = None,
        selector: str | None = None,
        wait: bool = True,
        request_timeout: str | None = None,
    ) -> CommandResult:
        """Delete resources by name or label selector, ignoring not-found."""
        args = ["delete", kind]
        if name:
            args.append(name)
        if selector:
            args.extend(["-l", selector])
        args.append("--ignore-not-found")
        if not wait:
            args.append("--wait=false")
        if request_timeout:
            args.append(f"--request-timeout={request_timeout}")
        return self.run(*args)

    def delete_file(self, path: Path) -> CommandResult:
        return self.run(
            "delete",
            "-f",
            str(path),
            "--ignore-not-found",
            "--wait=false",
            f"--request-timeout={DELETE_REQUEST_TIMEOUT}",
        )

    def exec(self, pod: str, container: str, command: list[str]) -> CommandResult:
        return self.run("exec", "-i", pod, "-c", container, "--", *command)

    # -- diagnostics ---------------------------------------------------------

    def describe(self, kind: str, name: str | None = None, selector: str | None = None) -> CommandResult:
        args = ["describe", kind]
        if name:
            args.append(name)
        if selector:
            args.extend(["-l", selector])
        return self.run(*args)

    def logs(self, target: str, tail: int | None = None) -> CommandResult:
        args = ["logs", target]
        if tail:
            args.append(f"--tail={tail}")
        return self.run(*args)

    def events(self, tail: int = 200) -> CommandResult:
        """Cluster events sorted by last timestamp, newest last."""
        result = self.run("get", "events", "--sort-by=.lastTimestamp")
        if result.ok and tail:
            lines = result.stdout.splitlines()
            result.stdout = "\n".join(lines[-tail:])
        return result

    # -- kubeconfig ----------------------------------------------------------

    def contexts(self) -> list[str]:
        result = run_command(["kubectl", "config", "get-contexts", "-o", "name"])
        if not result.ok:
            return []
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    def use_context(self, context: str) -> CommandResult:
        return run_command(["kubectl", "config", "use-context", context])

    def delete_kubeconfig_entries(self, context: str) -> list[CommandResult]:
        """Remove the context, cluster and user entries named ``context``."""
        return [
            run_command(["kubectl", "config", f"delete-{entry}", context])
            for entry in ("context", "cluster", "user")
        ]

    # -- tunnels -------------------------------------------------------------

    def port_forward(self, target: str, local_port: int, remote_port: int) -> subprocess.Popen:
        """Start a port-forward detached from this process.

        The child gets its own session and no inherited stdio, so it keeps
        running after the CLI exits.

        Raises:
            OSError: If kubectl cannot be started.
        """
        return subprocess.Popen(
            self._kubectl_cmd() + ["port-forward", target, f"{local_port}:{remote_port}"],
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            start_new_session=True,
        )


class Helm:
    """helm bound to a kube context."""

    def __init__(self, kube_context: str | None = None, namespace: str | None = None):
        self.kube_context = kube_context
        self.namespace = namespace

    def _helm_cmd(self) -> list[str]:
        cmd = ["helm"]
        if self.kube_context:
            cmd.extend(["--kube-context", self.kube_context])
        if self.namespace:
            cmd.extend(["--namespace", self.namespace])
        return cmd

    def repo_add(self, name: str, url: str) -> CommandResult:
        return run_command(["helm", "repo", "add", name, url])

    def repo_update(self) -> CommandResult:
        return run_command(["helm", "repo", "update"])

    def release_exists(self, release: str) -> bool:
        return run_command(self._helm_cmd() + ["status", release]).ok

    def upgrade_install(
        self,
        release: str,
        chart: str,
        values: dict[str, str] | None = None,
    ) -> CommandResult:
        """Install or upgrade a release with --set overrides."""
        cmd = self._helm_cmd() + ["upgrade", "--install", release, chart]
        for key, value in (values or {}).items():
            cmd.extend(["--set", f"{key}={value}"])
        return run_command(cmd)

    def uninstall(self, release: str) -> CommandResult:
        """Uninstall without waiting on resource deletion."""
        return run_command(self._helm_cmd() + ["uninstall", release, "--wait=false"])


class Kind:
    """kind cluster lifecycle."""

    def clusters(self) -> list[str]:
        result = run_command(["kind", "get", "clusters"])
        if not result.ok:
            return []
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    def cluster_exists(self, name: str) -> bool:
        return name in self.clusters()

    def create_cluster(self, name: str, config_path: Path) -> CommandResult:
        return run_command(["kind", "create", "cluster", "--name", name, "--config", str(config_path)])

    def delete_cluster(self, name: str) -> CommandResult:
        return run_command(["kind", "delete", "cluster", "--name", name])


class Docker:
    """docker queries used by preflight and cluster checks."""

    def info(self) -> CommandResult:
        return run_command(["docker", "info"], timeout=30)

    def container_has_mount(self, container: str, paths: tuple[str, ...]) -> bool:
        """Whether an existing container mounts any of ``paths``."""
        result = run_command(["docker", "inspect", container])
        if not result.ok:
            return False
        return any(path in result.stdout for path in paths)
