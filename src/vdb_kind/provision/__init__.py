"""Provisioning package for local Vertica clusters.

This package provides the `vdb-kind up` and `vdb-kind down` workflows:
1. Sizes the cluster from available memory
2. Creates the kind cluster and installs MinIO and the VerticaDB operator
3. Applies the VerticaDB manifest and waits for DBInitialized
4. Starts background port-forward tunnels and maps PVCs to host paths
5. Tears everything down again on a best-effort basis
"""

from .diagnostics import DiagnosticCollector, DiagnosticSection, render_bundle
from .down import TeardownCoordinator, TeardownReport, TeardownStepFailure
from .health import NodeHealthQuery, NodeHealthResult
from .k8s import Docker, Helm, Kind, Kubectl
from .links import LinkEntry, PathMapper
from .manifest import VerticaDBManifest, build_kind_config, build_manifest, render_manifest
from .prerequisites import DockerDetector, DockerInfo, ToolDetector, check_prerequisites
from .reconcile import Presence, ReconcileAction, Resource
from .sizing import SizingDecision, decide_size, read_available_mib
from .tunnels import (
    TunnelError,
    TunnelRecord,
    TunnelResult,
    TunnelSpec,
    TunnelStatus,
    TunnelStore,
    TunnelTracker,
    console_tunnel,
    vertica_tunnel,
)
from .up import UpResult, UpWorkflow
from .waiter import ConditionWaiter, PollState, WaitOutcome, WaitResult

__all__ = [
    # Sizing
    "SizingDecision",
    "decide_size",
    "read_available_mib",
    # Manifests
    "VerticaDBManifest",
    "build_manifest",
    "render_manifest",
    "build_kind_config",
    # Waiting
    "ConditionWaiter",
    "PollState",
    "WaitOutcome",
    "WaitResult",
    "DiagnosticCollector",
    "DiagnosticSection",
    "render_bundle",
    # Cluster adapters
    "Kubectl",
    "Helm",
    "Kind",
    "Docker",
    # Prerequisites
    "DockerDetector",
    "DockerInfo",
    "ToolDetector",
    "check_prerequisites",
    # Reconciliation
    "Presence",
    "ReconcileAction",
    "Resource",
    # Workflows
    "UpWorkflow",
    "UpResult",
    "TeardownCoordinator",
    "TeardownReport",
    "TeardownStepFailure",
    "NodeHealthQuery",
    "NodeHealthResult",
    # Tunnels
    "TunnelError",
    "TunnelRecord",
    "TunnelResult",
    "TunnelSpec",
    "TunnelStatus",
    "TunnelStore",
    "TunnelTracker",
    "vertica_tunnel",
    "console_tunnel",
    # Links
    "LinkEntry",
    "PathMapper",
]
