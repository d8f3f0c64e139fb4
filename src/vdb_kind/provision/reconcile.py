"""Observe/ensure reconciliation for resources the up workflow creates.

Each resource reports whether it is present; ensure() only creates it when
it is absent, so re-running the workflow against existing state makes no
creation calls.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from pathlib import Path

from ..errors import StepFailureError
from ..shared.logging import get_logger
from ..utils import CommandResult
from .k8s import Helm, Kind, Kubectl

logger = get_logger(__name__)


class Presence(Enum):
    """Observed state of a resource."""

    PRESENT = "present"
    ABSENT = "absent"


class ReconcileAction(Enum):
    """What ensure() did."""

    CREATED = "created"
    EXISTING = "existing"


class Resource(ABC):
    """A resource with an observe/create pair."""

    #: Stage name reported on failure
    stage: str = "reconcile"

    @property
    @abstractmethod
    def name(self) -> str:
        """Display name."""

    @abstractmethod
    def observe(self) -> Presence:
        """Check whether the resource exists."""

    @abstractmethod
    def create(self) -> CommandResult:
        """Create the resource."""

    def ensure(self) -> ReconcileAction:
        """Create the resource if absent.

        Raises:
            StepFailureError: If creation fails.
        """
        if self.observe() == Presence.PRESENT:
            logger.info("resource exists", resource=self.name)
            return ReconcileAction.EXISTING

        result = self.create()
        if not result.ok:
            raise StepFailureError(self.stage, f"Failed to create {self.name}", result.error_message())
        logger.info("resource created", resource=self.name)
        return ReconcileAction.CREATED


class KindCluster(Resource):
    stage = "cluster"

    def __init__(self, kind: Kind, cluster: str, config_path: Path):
        self.kind = kind
        self.cluster = cluster
        self.config_path = config_path

    @property
    def name(self) -> str:
        return f"kind cluster '{self.cluster}'"

    def observe(self) -> Presence:
        return Presence.PRESENT if self.kind.cluster_exists(self.cluster) else Presence.ABSENT

    def create(self) -> CommandResult:
        return self.kind.create_cluster(self.cluster, self.config_path)


class HelmRelease(Resource):
    def __init__(
        self,
        helm: Helm,
        release: str,
        chart: str,
        values: dict[str, str] | None = None,
        stage: str = "helm",
    ):
        self.helm = helm
        self.release = release
        self.chart = chart
        self.values = values or {}
        self.stage = stage

    @property
    def name(self) -> str:
        return f"helm release '{self.release}'"

    def observe(self) -> Presence:
        return Presence.PRESENT if self.helm.release_exists(self.release) else Presence.ABSENT

    def create(self) -> CommandResult:
        return self.helm.upgrade_install(self.release, self.chart, self.values)


class LiteralSecret(Resource):
    stage = "secrets"

    def __init__(self, kubectl: Kubectl, secret: str, data: dict[str, str]):
        self.kubectl = kubectl
        self.secret = secret
        self.data = data

    @property
    def name(self) -> str:
        return f"secret '{self.secret}'"

    def observe(self) -> Presence:
        return Presence.PRESENT if self.kubectl.exists("secret", self.secret) else Presence.ABSENT

    def create(self) -> CommandResult:
        return self.kubectl.create_secret_literals(self.secret, self.data)


class FileSecret(LiteralSecret):
    def __init__(self, kubectl: Kubectl, secret: str, key: str, path: Path):
        super().__init__(kubectl, secret, {})
        self.key = key
        self.path = path

    def create(self) -> CommandResult:
        return self.kubectl.create_secret_file(self.secret, self.key, self.path)


class AppliedManifest(Resource):
    """A custom resource applied from a rendered file.

    Present only if the resource exists and the file did not change since
    the last apply.
    """

    stage = "apply"

    def __init__(self, kubectl: Kubectl, kind: str, resource_name: str, path: Path, changed: bool):
        self.kubectl = kubectl
        self.kind = kind
        self.resource_name = resource_name
        self.path = path
        self.changed = changed

    @property
    def name(self) -> str:
        return f"{self.kind} '{self.resource_name}'"

    def observe(self) -> Presence:
        if self.changed:
            return Presence.ABSENT
        if self.kubectl.exists(self.kind, self.resource_name):
            return Presence.PRESENT
        return Presence.ABSENT

    def create(self) -> CommandResult:
        return self.kubectl.apply_file(self.path)
