"""The down workflow: best-effort teardown of everything up created.

Every step may fail without stopping the ones after it. Failures are logged
and collected in a TeardownReport; nothing is raised.
"""

from __future__ import annotations

import shutil
from collections.abc import Callable
from dataclasses import dataclass, field

import click

from ..config import ClusterConfig
from ..shared.logging import get_logger
from ..utils import CommandResult
from .k8s import DELETE_REQUEST_TIMEOUT, Helm, Kind, Kubectl
from .tunnels import TunnelStore, TunnelTracker
from .up import MINIO_RELEASE, OPERATOR_RELEASE

logger = get_logger(__name__)

VERTICADB_CRD = "verticadbs.vertica.com"
LEFTOVER_PVC_SELECTORS = ("app.kubernetes.io/instance=minio", "app.kubernetes.io/name=vertica")

StepOutcome = CommandResult | list[CommandResult] | bool | None


@dataclass
class TeardownStepFailure:
    """A teardown step that did not succeed."""

    step: str
    error: str


@dataclass
class TeardownReport:
    """Advisory summary of a teardown run."""

    cluster: str
    steps: list[str] = field(default_factory=list)
    failures: list[TeardownStepFailure] = field(default_factory=list)
    data_wiped: bool = False

    @property
    def success(self) -> bool:
        """Teardown always reports success."""
        return True


class TeardownCoordinator:
    """Remove tunnels, workloads, releases, the kind cluster and kubeconfig entries."""

    def __init__(
        self,
        config: ClusterConfig,
        kubectl: Kubectl | None = None,
        helm: Helm | None = None,
        kind: Kind | None = None,
        tunnels: TunnelTracker | None = None,
        echo: Callable[[str], None] = click.echo,
    ):
        self.config = config
        self.kubectl = kubectl or Kubectl(config.namespace, config.kube_context)
        self.helm = helm or Helm(config.kube_context, config.namespace)
        self.kind = kind or Kind()
        self.tunnels = tunnels or TunnelTracker(self.kubectl, TunnelStore(config.tunnel_dir))
        self.echo = echo

    def _attempt(self, report: TeardownReport, step: str, action: Callable[[], StepOutcome]) -> StepOutcome:
        """Run one step, recording instead of raising any failure."""
        report.steps.append(step)
        try:
            outcome = action()
        except Exception as e:
            logger.warning("teardown step raised", step=step, error=str(e))
            report.failures.append(TeardownStepFailure(step, str(e)))
            return None

        results = outcome if isinstance(outcome, list) else [outcome]
        for result in results:
            if isinstance(result, CommandResult) and not result.ok:
                logger.warning("teardown step failed", step=step, error=result.error_message())
                report.failures.append(TeardownStepFailure(step, result.error_message()))
        return outcome

    def run(self, clean_data: bool = False) -> TeardownReport:
        """Tear down the cluster.

        Args:
            clean_data: Also delete the host PV data and links. Irreversible.

        Returns:
            TeardownReport; its success is unconditional.
        """
        cfg = self.config
        report = TeardownReport(cfg.cluster)
        k = self.kubectl

        self._attempt(report, "stop vertica tunnel", lambda: self.tunnels.stop(cfg.cluster, cfg.vertica_port))
        self._attempt(report, "stop console tunnel", lambda: self.tunnels.stop(cfg.cluster, cfg.console_port))
        self._attempt(report, "stop other tunnels", lambda: bool(self.tunnels.stop_all(cfg.cluster)))

        if self._attempt(report, "find cluster", lambda: self.kind.cluster_exists(cfg.cluster)):
            self._attempt(report, "use context", self._use_context_if_present)
            self._attempt(report, "delete VerticaDB", self._delete_verticadb)
            self._attempt(
                report,
                "delete statefulset",
                lambda: k.delete(
                    "statefulset",
                    f"{cfg.db_name}-sc",
                    wait=False,
                    request_timeout=DELETE_REQUEST_TIMEOUT,
                ),
            )
            for selector in LEFTOVER_PVC_SELECTORS:
                self._attempt(
                    report,
                    f"delete pvc {selector}",
                    lambda selector=selector: k.delete(
                        "pvc",
                        selector=selector,
                        wait=False,
                        request_timeout=DELETE_REQUEST_TIMEOUT,
                    ),
                )
            self._attempt(report, "uninstall operator", lambda: self.helm.uninstall(OPERATOR_RELEASE))
            self._attempt(report, "uninstall MinIO", lambda: self.helm.uninstall(MINIO_RELEASE))
        else:
            logger.info("kind cluster not found", cluster=cfg.cluster)

        self._attempt(report, "delete kind cluster", lambda: self.kind.delete_cluster(cfg.cluster))
        self._attempt(report, "clean kubeconfig", lambda: k.delete_kubeconfig_entries(cfg.kube_context))

        if clean_data:
            self.echo(f"Removing PV data under {cfg.host_root}: {cfg.pv_dir.name} dir and {cfg.links_dir.name} dir")
            self._attempt(report, "wipe host data", self._wipe_host_data)
            report.data_wiped = not cfg.pv_dir.exists() and not cfg.links_dir.exists()

        if report.failures:
            logger.info("teardown finished with failures", count=len(report.failures))
        self.echo(f"Cleaned up: cluster {cfg.cluster} removed.")
        return report

    def _use_context_if_present(self) -> CommandResult | None:
        context = self.config.kube_context
        if context not in self.kubectl.contexts():
            return None
        return self.kubectl.use_context(context)

    def _delete_verticadb(self) -> list[CommandResult]:
        if not self.kubectl.crd_exists(VERTICADB_CRD):
            return []
        results = [
            self.kubectl.delete(
                "verticadb",
                self.config.db_name,
                wait=False,
                request_timeout=DELETE_REQUEST_TIMEOUT,
            )
        ]
        if self.config.manifest_path.exists():
            results.append(self.kubectl.delete_file(self.config.manifest_path))
        return results

    def _wipe_host_data(self) -> None:
        for path in (self.config.pv_dir, self.config.links_dir):
            shutil.rmtree(path, ignore_errors=True)
