"""Reading and steering the cluster's ClusterVersion resource."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Protocol

from managed_upgrade.api import ConditionStatus, ObjectMeta, UpgradeConfig

logger = logging.getLogger(__name__)

CLUSTER_VERSION_NAME = "version"

UPDATE_STATE_COMPLETED = "Completed"
UPDATE_STATE_PARTIAL = "Partial"

OPERATOR_DEGRADED = "Degraded"
OPERATOR_AVAILABLE = "Available"


class UpgradeSource(str, Enum):
    """How the desired release of an upgrade is specified."""

    IMAGE = "UpgradeWithImage"
    CHANNEL_VERSION = "UpgradeWithChannelVersion"


@dataclass
class DesiredUpdate:
    """The release the cluster is asked to move to."""

    version: str = ""
    image: str = ""


@dataclass
class Release:
    """A release the cluster could update to."""

    version: str = ""
    image: str = ""


@dataclass
class UpdateHistory:
    """One entry of the cluster's update history."""

    state: str = UPDATE_STATE_PARTIAL
    version: str = ""
    image: str = ""
    completion_time: Optional[datetime] = None


@dataclass
class ClusterVersionSpec:
    """Desired state of the ClusterVersion."""

    channel: str = ""
    desired_update: Optional[DesiredUpdate] = None
    overrides: list = field(default_factory=list)


@dataclass
class ClusterVersionStatus:
    """Observed state of the ClusterVersion."""

    history: list[UpdateHistory] = field(default_factory=list)
    available_updates: list[Release] = field(default_factory=list)


@dataclass
class ClusterVersion:
    """The ClusterVersion singleton of a cluster."""

    metadata: ObjectMeta = field(default_factory=ObjectMeta)
    spec: ClusterVersionSpec = field(default_factory=ClusterVersionSpec)
    status: ClusterVersionStatus = field(default_factory=ClusterVersionStatus)

    @property
    def name(self) -> str:
        return self.metadata.name


@dataclass
class OperatorCondition:
    """A status condition of a cluster operator."""

    type: str
    status: ConditionStatus


@dataclass
class ClusterOperator:
    """A cluster operator and its status conditions."""

    name: str = ""
    conditions: list[OperatorCondition] = field(default_factory=list)


@dataclass
class HasDegradedOperatorsResult:
    """Names of cluster operators that are degraded or unavailable."""

    degraded: list[str] = field(default_factory=list)


class KubeClient(Protocol):
    """The cluster access this module needs."""

    def get(self, kind: type, name: str, namespace: str = "") -> Any:
        ...

    def update(self, obj: Any) -> None:
        ...

    def list(self, kind: type) -> list:
        ...


def check_upgrade_source(upgrade_config: UpgradeConfig) -> UpgradeSource:
    """Whether the upgrade is specified by image or by channel and version."""
    desired = upgrade_config.spec.desired
    if desired.image:
        return UpgradeSource.IMAGE
    if desired.channel and desired.version:
        return UpgradeSource.CHANNEL_VERSION
    raise ValueError("cannot find the correct upgrade spec source")


def get_history(cluster_version: ClusterVersion, version: str) -> Optional[UpdateHistory]:
    """The first history entry for a version, or None."""
    return next((h for h in cluster_version.status.history if h.version == version), None)


def _completed(cluster_version: ClusterVersion) -> list[UpdateHistory]:
    return [h for h in cluster_version.status.history if h.state == UPDATE_STATE_COMPLETED]


def get_current_version(cluster_version: ClusterVersion) -> str:
    """The version of the most recently completed update."""
    current = ""
    latest: Optional[datetime] = None
    for history in _completed(cluster_version):
        if latest is None or (
            history.completion_time is not None and history.completion_time > latest
        ):
            current = history.version
            latest = history.completion_time
    if not current:
        raise ValueError("failed to get current version")
    return current


def get_current_version_minus_one(cluster_version: ClusterVersion) -> str:
    """The version completed just before the current one."""
    completed = _completed(cluster_version)
    if len(completed) <= 1:
        raise ValueError("cluster has only one version available")
    ordered = sorted(
        completed,
        key=lambda h: (h.completion_time is not None, h.completion_time or datetime.min),
        reverse=True,
    )
    version = ordered[1].version
    if not version:
        raise ValueError("failed to get current version - 1")
    return version


class ClusterVersionClient:
    """Operations on the cluster's ClusterVersion and ClusterOperators."""

    def __init__(self, client: KubeClient) -> None:
        self.client = client

    def get_cluster_version(self) -> ClusterVersion:
        return self.client.get(ClusterVersion, CLUSTER_VERSION_NAME)

    def ensure_desired_config(self, upgrade_config: UpgradeConfig) -> bool:
        """Point the ClusterVersion at the desired release.

        Returns whether the upgrade has been triggered.
        """
        cluster_version = self.get_cluster_version()
        source = check_upgrade_source(upgrade_config)
        if source is UpgradeSource.IMAGE:
            return self._upgrade_with_image(cluster_version, upgrade_config)
        return self._upgrade_with_channel_version(cluster_version, upgrade_config)

    def has_upgrade_commenced(self, upgrade_config: UpgradeConfig) -> bool:
        cluster_version = self.get_cluster_version()
        source = check_upgrade_source(upgrade_config)
        desired_update = cluster_version.spec.desired_update
        desired = upgrade_config.spec.desired
        if desired_update is None:
            return False
        if source is UpgradeSource.IMAGE:
            if desired_update.image != desired.image:
                return False
            logger.info("ClusterVersion is already set to Image %s", desired.image)
            return True
        if desired_update.version != desired.version:
            return False
        logger.info(
            "ClusterVersion is already set to Channel %s Version %s",
            desired.channel,
            desired.version,
        )
        return True

    def has_upgrade_completed(
        self, cluster_version: ClusterVersion, upgrade_config: UpgradeConfig
    ) -> bool:
        version = upgrade_config.spec.desired.version
        return any(
            h.version == version and h.state == UPDATE_STATE_COMPLETED
            for h in cluster_version.status.history
        )

    def has_degraded_operators(self) -> HasDegradedOperatorsResult:
        degraded = [
            operator.name
            for operator in self.client.list(ClusterOperator)
            if any(_is_degraded(c) for c in operator.conditions)
        ]
        return HasDegradedOperatorsResult(degraded=degraded)

    def _upgrade_with_image(
        self, cluster_version: ClusterVersion, upgrade_config: UpgradeConfig
    ) -> bool:
        image = upgrade_config.spec.desired.image
        current = cluster_version.spec.desired_update
        if current is None or current.image != image:
            logger.info("Setting ClusterVersion to Image %s", image)
            cluster_version.spec.desired_update = DesiredUpdate(image=image, version="")
            self.client.update(cluster_version)
        return True

    def _upgrade_with_channel_version(
        self, cluster_version: ClusterVersion, upgrade_config: UpgradeConfig
    ) -> bool:
        desired = upgrade_config.spec.desired
        if cluster_version.spec.channel != desired.channel:
            logger.info(
                "Setting ClusterVersion to Channel %s Version %s",
                desired.channel,
                desired.version,
            )
            cluster_version.spec.channel = desired.channel
            self.client.update(cluster_version)
            cluster_version = self.get_cluster_version()

        # The version operator may need time to sync the channel's releases.
        available = any(
            u.version == desired.version and u.image
            for u in cluster_version.status.available_updates
        )
        if not available:
            return False

        cluster_version.spec.overrides = []
        cluster_version.spec.desired_update = DesiredUpdate(version=desired.version)
        self.client.update(cluster_version)
        return True


def _is_degraded(condition: OperatorCondition) -> bool:
    return (condition.type == OPERATOR_DEGRADED and condition.status == ConditionStatus.TRUE) or (
        condition.type == OPERATOR_AVAILABLE and condition.status == ConditionStatus.FALSE
    )