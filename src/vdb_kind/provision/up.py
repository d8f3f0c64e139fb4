"""The up workflow: provision kind, MinIO, the operator and a VerticaDB.

Stages run strictly in order and each one is idempotent: existing resources
are detected and left alone. Any failure aborts the run with a
ProvisionError naming the stage; partial state is repaired by running up
again.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field

import click

from ..config import ClusterConfig
from ..errors import (
    FatalPreconditionError,
    StepFailureError,
    WaitTerminalFailureError,
    WaitTimeoutError,
)
from ..shared.logging import get_logger
from .diagnostics import DiagnosticCollector, render_bundle
from .health import NodeHealthQuery, NodeHealthResult
from .k8s import Docker, Helm, Kind, Kubectl
from .links import LinkEntry, PathMapper
from .manifest import (
    LICENSE_SECRET,
    PASSWORD_SECRET,
    PROVISIONER_PATHS,
    S3_CREDS_SECRET,
    VerticaDBManifest,
    build_manifest,
    record_applied,
    write_kind_config,
    write_manifest,
)
from .prerequisites import check_prerequisites
from .reconcile import (
    AppliedManifest,
    FileSecret,
    HelmRelease,
    KindCluster,
    LiteralSecret,
    ReconcileAction,
)
from .sizing import SizingDecision, decide_size, read_available_mib
from .tunnels import (
    TunnelError,
    TunnelResult,
    TunnelStore,
    TunnelTracker,
    console_tunnel,
    vertica_tunnel,
)
from .waiter import ConditionWaiter, PollState, WaitOutcome

logger = get_logger(__name__)

HELM_REPOS = {
    "bitnami": "https://charts.bitnami.com/bitnami",
    "vertica": "https://vertica.github.io/charts",
}

MINIO_RELEASE = "minio"
MINIO_CHART = "bitnami/minio"
MINIO_DEPLOYMENTS = ("minio", "minio-console")
MINIO_SECRET = "minio"
MINIO_URL = "http://minio:9000"

OPERATOR_RELEASE = "vertica-operator"
OPERATOR_CHART = "vertica/verticadb-operator"
OPERATOR_DEPLOYMENT = "verticadb-operator-manager"
WEBHOOK_SERVICE = "verticadb-operator-webhook-service"

CURL_IMAGE = "curlimages/curl"
MC_IMAGE = "docker.io/bitnami/minio-client:2025.7.21-debian-12-r2"
READY_PROBE_POD = "minio-ready"
BUCKET_PROBE_POD = "mc-create-bucket"

# (interval, timeout) in seconds per wait
ROLLOUT_WAIT = (2.0, 300.0)
READY_PROBE_WAIT = (2.0, 60.0)
BUCKET_PROBE_WAIT = (2.0, 120.0)
WEBHOOK_WAIT = (2.0, 120.0)
DB_INIT_WAIT = (5.0, 600.0)

DB_INITIALIZED_CONDITION = "DBInitialized"

VSQL_HINT = 'vsql -h localhost -p {port} -U dbadmin -w "YOUR_DBADMIN_PASSWORD" -c "YOUR SQL STATEMENT;"'


def bucket_script(bucket: str) -> str:
    """mc script: create the bucket if absent, then prove it is listable."""
    return (
        "set -eo pipefail; "
        'export PATH=/opt/bitnami/minio-client/bin:"$PATH"; '
        'mc alias set local "$MINIO_URL" "$MINIO_USER" "$MINIO_PASS"; '
        f"mc ls local/{bucket} >/dev/null 2>&1 || mc mb -p local/{bucket}; "
        f"mc ls local/{bucket} >/dev/null"
    )


@dataclass
class UpResult:
    """What an up run produced."""

    sizing: SizingDecision | None = None
    manifest: VerticaDBManifest | None = None
    actions: dict[str, ReconcileAction] = field(default_factory=dict)
    health: NodeHealthResult | None = None
    tunnels: list[TunnelResult] = field(default_factory=list)
    links: list[LinkEntry] = field(default_factory=list)


class UpWorkflow:
    """Sequence the up stages for one cluster."""

    def __init__(
        self,
        config: ClusterConfig,
        kubectl: Kubectl | None = None,
        helm: Helm | None = None,
        kind: Kind | None = None,
        docker: Docker | None = None,
        waiter: ConditionWaiter | None = None,
        tunnels: TunnelTracker | None = None,
        memory_probe: Callable[[], int] = read_available_mib,
        preflight: Callable[[], None] = check_prerequisites,
        echo: Callable[[str], None] = click.echo,
    ):
        self.config = config
        self.kubectl = kubectl or Kubectl(config.namespace, config.kube_context)
        self.helm = helm or Helm(config.kube_context, config.namespace)
        self.kind = kind or Kind()
        self.docker = docker or Docker()
        self.waiter = waiter or ConditionWaiter()
        self.tunnels = tunnels or TunnelTracker(self.kubectl, TunnelStore(config.tunnel_dir), self.waiter)
        self.memory_probe = memory_probe
        self.preflight = preflight
        self.echo = echo

        self.result = UpResult()
        self._manifest_changed = True
        self._root_user: str | None = None
        self._root_password: str | None = None

    def stages(self) -> list[tuple[str, Callable[[], None]]]:
        """Stages in execution order."""
        return [
            ("sizing", self._size),
            ("tools", self._check_tools),
            ("cluster", self._ensure_cluster),
            ("storage-backend", self._install_storage_backend),
            ("storage-backend-ready", self._wait_storage_backend),
            ("bucket", self._verify_bucket),
            ("operator", self._install_operator),
            ("operator-ready", self._wait_operator),
            ("secrets", self._provision_secrets),
            ("manifest", self._write_manifest),
            ("webhook", self._wait_webhook),
            ("apply", self._apply_manifest),
            ("db-initialized", self._wait_db_initialized),
            ("health", self._query_health),
            ("tunnels", self._ensure_tunnels),
            ("links", self._rebuild_links),
        ]

    def run(self) -> UpResult:
        """Run every stage.

        Raises:
            ProvisionError: From the first stage that fails. Filesystem
                errors are reported as a StepFailureError of their stage.
        """
        for stage, action in self.stages():
            logger.info("stage starting", stage=stage)
            try:
                action()
            except OSError as e:
                logger.debug("stage filesystem error", stage=stage, error=str(e))
                raise StepFailureError(stage, f"Filesystem error during stage '{stage}'", str(e)) from e
        return self.result

    # -- helpers -------------------------------------------------------------

    def _wait(
        self,
        stage: str,
        poll_fn: Callable[[], PollState],
        timing: tuple[float, float],
        description: str,
        collector: DiagnosticCollector | None = None,
        details: Callable[[], str | None] | None = None,
    ) -> None:
        """Wait for a condition; on failure emit diagnostics and raise."""
        interval, timeout = timing
        wait = self.waiter.wait_until(poll_fn, interval, timeout, description)
        if wait.ok:
            return

        sections = collector.collect() if collector else []
        if sections:
            self.echo(render_bundle(sections))

        detail = details() if details else None
        if wait.outcome == WaitOutcome.TIMEOUT:
            raise WaitTimeoutError(
                stage,
                f"Timed out after {timeout:.0f}s waiting for {description}",
                detail,
                diagnostics=sections,
            )
        raise WaitTerminalFailureError(stage, f"{description} failed", detail, diagnostics=sections)

    def _rollout(self, stage: str, deployment: str) -> None:
        self._wait(
            stage,
            lambda: PollState.SATISFIED if self.kubectl.rollout_complete(deployment) else PollState.PENDING,
            ROLLOUT_WAIT,
            f"deployment/{deployment} rollout",
        )
        self.echo(f"  ✓ deployment/{deployment} rolled out")

    def _run_probe_pod(
        self,
        stage: str,
        pod: str,
        image: str,
        args: list[str],
        timing: tuple[float, float],
        env: dict[str, str] | None = None,
        command: bool = False,
    ) -> None:
        """Run a one-shot pod and wait for it to succeed."""
        self.kubectl.delete("pod", pod)
        result = self.kubectl.run_pod(pod, image, args, env=env, command=command)
        if not result.ok:
            raise StepFailureError(stage, f"Failed to start pod {pod}", result.error_message())

        def phase() -> PollState:
            current = self.kubectl.pod_phase(pod)
            if current == "Succeeded":
                return PollState.SATISFIED
            if current == "Failed":
                return PollState.FAILED
            return PollState.PENDING

        try:
            self._wait(stage, phase, timing, f"pod {pod}", details=lambda: self.kubectl.logs(pod).output)
        finally:
            self.kubectl.delete("pod", pod)

    # -- stages --------------------------------------------------------------

    def _size(self) -> None:
        try:
            available_mib = self.memory_probe()
        except (OSError, ValueError) as e:
            raise FatalPreconditionError("sizing", "Cannot read available memory", str(e)) from e
        sizing = decide_size(available_mib)
        self.result.sizing = sizing
        if sizing.node_count == 3:
            self.echo(
                f">>>> Good, sufficient RAM available ({sizing.memory_observed_mib} MiB). "
                "Deploying 3-node Vertica cluster."
            )
        else:
            self.echo(
                f">>>> Limited RAM available ({sizing.memory_observed_mib} MiB). "
                "Deploying 1-node Vertica cluster."
            )

    def _check_tools(self) -> None:
        self.preflight()
        self.echo("  ✓ docker, kubectl, kind and helm available")

    def _ensure_cluster(self) -> None:
        cfg = self.config
        cfg.pv_dir.mkdir(parents=True, exist_ok=True)
        write_kind_config(cfg.pv_dir, cfg.kind_config_path)

        action = KindCluster(self.kind, cfg.cluster, cfg.kind_config_path).ensure()
        self.result.actions["cluster"] = action
        if action == ReconcileAction.EXISTING:
            self.echo(f"  ✓ kind cluster '{cfg.cluster}' exists")
            if not self.docker.container_has_mount(f"{cfg.cluster}-control-plane", PROVISIONER_PATHS):
                self.echo(f"  ⚠ Existing kind cluster '{cfg.cluster}' may lack the host PV mount.")
                self.echo(f"    To ensure PVC data lands in {cfg.pv_dir}, run: vdb-kind down && vdb-kind up")
        else:
            self.echo(f"  ✓ kind cluster '{cfg.cluster}' created")

        result = self.kubectl.use_context(cfg.kube_context)
        if not result.ok:
            raise StepFailureError("cluster", f"Cannot switch to context {cfg.kube_context}", result.error_message())

    def _install_storage_backend(self) -> None:
        for name, url in HELM_REPOS.items():
            added = self.helm.repo_add(name, url)
            if not added.ok:
                logger.debug("helm repo add failed", repo=name, url=url, error=added.error_message())
        result = self.helm.repo_update()
        if not result.ok:
            raise StepFailureError("storage-backend", "helm repo update failed", result.error_message())

        cfg = self.config
        release = HelmRelease(
            self.helm,
            MINIO_RELEASE,
            MINIO_CHART,
            {
                "auth.rootUser": cfg.minio_user,
                "auth.rootPassword": cfg.minio_password,
                "defaultBuckets": cfg.bucket,
                "resources.requests.memory": "512Mi",
            },
            stage="storage-backend",
        )
        self.result.actions["storage-backend"] = release.ensure()
        self.echo(f"  ✓ MinIO release {self.result.actions['storage-backend'].value}")

    def _wait_storage_backend(self) -> None:
        for deployment in MINIO_DEPLOYMENTS:
            self._rollout("storage-backend-ready", deployment)
        self._run_probe_pod(
            "storage-backend-ready",
            READY_PROBE_POD,
            CURL_IMAGE,
            ["-sSf", f"{MINIO_URL}/minio/health/ready"],
            READY_PROBE_WAIT,
        )
        self.echo("  ✓ MinIO is ready")

    def _verify_bucket(self) -> None:
        user = self.kubectl.secret_value(MINIO_SECRET, "root-user")
        password = self.kubectl.secret_value(MINIO_SECRET, "root-password")
        if not user or not password:
            raise StepFailureError("bucket", f"Cannot read MinIO root credentials from secret '{MINIO_SECRET}'")
        self._root_user, self._root_password = user, password

        self._run_probe_pod(
            "bucket",
            BUCKET_PROBE_POD,
            MC_IMAGE,
            ["/bin/bash", "-lc", bucket_script(self.config.bucket)],
            BUCKET_PROBE_WAIT,
            env={"MINIO_URL": MINIO_URL, "MINIO_USER": user, "MINIO_PASS": password},
            command=True,
        )
        self.echo(f"  ✓ Bucket '{self.config.bucket}' verified")

    def _install_operator(self) -> None:
        release = HelmRelease(self.helm, OPERATOR_RELEASE, OPERATOR_CHART, stage="operator")
        self.result.actions["operator"] = release.ensure()
        self.echo(f"  ✓ Vertica operator release {self.result.actions['operator'].value}")

    def _wait_operator(self) -> None:
        self._rollout("operator-ready", OPERATOR_DEPLOYMENT)

    def _provision_secrets(self) -> None:
        cfg = self.config
        secrets = [
            LiteralSecret(
                self.kubectl,
                S3_CREDS_SECRET,
                {"accesskey": self._root_user or "", "secretkey": self._root_password or ""},
            )
        ]
        if cfg.has_license:
            if not cfg.license_file.is_file():
                raise StepFailureError("secrets", f"License file not found: {cfg.license_file}")
            secrets.append(FileSecret(self.kubectl, LICENSE_SECRET, "license.dat", cfg.license_file))
        if cfg.has_password:
            secrets.append(LiteralSecret(self.kubectl, PASSWORD_SECRET, {"password": cfg.dbadmin_password}))

        for secret in secrets:
            action = secret.ensure()
            self.result.actions[f"secret/{secret.secret}"] = action
            self.echo(f"  ✓ {secret.name} {action.value}")

    def _write_manifest(self) -> None:
        cfg = self.config
        manifest = build_manifest(cfg, self.result.sizing, cfg.has_license, cfg.has_password)
        self._manifest_changed = write_manifest(manifest, cfg.manifest_path, cfg.applied_manifest_path)
        self.result.manifest = manifest
        self.echo(f"  ✓ Wrote {cfg.manifest_path}")

    def _wait_webhook(self) -> None:
        self._wait(
            "webhook",
            lambda: PollState.SATISFIED if self.kubectl.endpoint_address(WEBHOOK_SERVICE) else PollState.PENDING,
            WEBHOOK_WAIT,
            f"endpoints of {WEBHOOK_SERVICE}",
            details=lambda: self.kubectl.run("get", "svc,endpoints", WEBHOOK_SERVICE).output,
        )

    def _apply_manifest(self) -> None:
        cfg = self.config
        resource = AppliedManifest(
            self.kubectl, "verticadb", cfg.db_name, cfg.manifest_path, self._manifest_changed
        )
        self.echo("Applying VerticaDB manifest...")
        try:
            self.result.actions["apply"] = resource.ensure()
        except StepFailureError:
            # Force a re-apply on the next run
            cfg.applied_manifest_path.unlink(missing_ok=True)
            raise
        record_applied(cfg.manifest_path, cfg.applied_manifest_path)

    def _wait_db_initialized(self) -> None:
        db = self.config.db_name
        timeout = DB_INIT_WAIT[1]
        self.echo(f"Waiting up to {timeout / 60:.0f}m for {db} to reach {DB_INITIALIZED_CONDITION}=True...")

        def initialized() -> PollState:
            status = self.kubectl.condition_status("verticadb", db, DB_INITIALIZED_CONDITION)
            return PollState.SATISFIED if status == "True" else PollState.PENDING

        try:
            self._wait(
                "db-initialized",
                initialized,
                DB_INIT_WAIT,
                f"{db} {DB_INITIALIZED_CONDITION}=True",
                collector=DiagnosticCollector(self.kubectl, db),
            )
        except (WaitTimeoutError, WaitTerminalFailureError):
            self.echo("DB initialization did not complete. See diagnostics above.")
            raise

    def _query_health(self) -> None:
        if self.result.sizing and self.result.sizing.node_count == 3:
            self.echo("")
            self.echo("For a 3-node cluster, if you see details below for only one node, it's just a matter of timing.")
            self.echo("To reliably view all nodes, wait a bit and query the nodes table again later.")
            self.echo("")

        health = NodeHealthQuery(self.kubectl).query(self.config.dbadmin_password)
        self.result.health = health
        if not health.ok:
            raise StepFailureError("health", "Vertica node health query failed", health.error)
        self.echo("Vertica nodes:")
        self.echo(health.output.rstrip())
        self.echo("")
        self.echo("To run SQL statements (omit -w if no dbadmin password was set):")
        self.echo(VSQL_HINT.format(port=self.config.vertica_port))

    def _ensure_tunnels(self) -> None:
        cfg = self.config
        for spec in (vertica_tunnel(cfg.vertica_port), console_tunnel(cfg.console_port)):
            try:
                self.result.tunnels.append(self.tunnels.ensure(cfg.cluster, spec))
            except TunnelError as e:
                raise StepFailureError("tunnels", str(e)) from e

    def _rebuild_links(self) -> None:
        cfg = self.config
        mapper = PathMapper(self.kubectl, cfg.pv_dir, cfg.links_dir)
        try:
            self.result.links = mapper.rebuild()
        except OSError as e:
            raise StepFailureError("links", f"Cannot create links under {cfg.links_dir}", str(e)) from e
