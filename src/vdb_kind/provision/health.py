"""Vertica node health query.

Runs vsql inside the first Vertica pod and returns the nodes table.
"""

from __future__ import annotations

from dataclasses import dataclass

from .k8s import Kubectl

VERTICA_POD_SELECTOR = "app.kubernetes.io/name=vertica"
SERVER_CONTAINER = "server"
VSQL_PATH = "/opt/vertica/bin/vsql"

NODES_QUERY = (
    "select node_name,node_state,is_primary,node_address,catalog_path,"
    "node_type,is_ephemeral,subcluster_name,build_info from nodes;"
)


@dataclass
class NodeHealthResult:
    """Result of the nodes query."""

    ok: bool
    pod: str | None = None
    output: str = ""
    error: str | None = None


class NodeHealthQuery:
    """Query the nodes table through kubectl exec."""

    def __init__(self, kubectl: Kubectl):
        self.kubectl = kubectl

    def query(self, dbadmin_password: str | None = None) -> NodeHealthResult:
        """Run the nodes query.

        Args:
            dbadmin_password: Password for dbadmin, if one was set.

        Returns:
            NodeHealthResult with the vsql output.
        """
        pod = self.kubectl.first_pod(VERTICA_POD_SELECTOR)
        if not pod:
            return NodeHealthResult(ok=False, error="No Vertica pod found")

        command = [VSQL_PATH, "-U", "dbadmin", "-w", dbadmin_password or "", "-c", NODES_QUERY]
        result = self.kubectl.exec(pod, SERVER_CONTAINER, command)
        if not result.ok:
            return NodeHealthResult(ok=False, pod=pod, output=result.stdout, error=result.error_message())
        return NodeHealthResult(ok=True, pod=pod, output=result.stdout)
