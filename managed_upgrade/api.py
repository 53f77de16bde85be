"""Data types of the UpgradeConfig resource and their helpers."""

from __future__ import annotations

import copy
import dataclasses
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Iterable, Optional


class NotFoundError(LookupError):
    """A requested cluster object does not exist."""


class UpgradeConfigNotFoundError(NotFoundError):
    """No UpgradeConfig is present in the cluster."""

    def __init__(self, message: str = "upgrade config not found") -> None:
        super().__init__(message)


class NotConfiguredError(RuntimeError):
    """The UpgradeConfig manager has no remote source configured."""

    def __init__(self, message: str = "upgrade config manager not configured") -> None:
        super().__init__(message)


@dataclass(frozen=True)
class GroupVersion:
    """An API group together with its version."""

    group: str
    version: str

    def __str__(self) -> str:
        return f"{self.group}/{self.version}"


SCHEME_GROUP_VERSION = GroupVersion(group="upgrade.managed.openshift.io", version="v1alpha1")


class ConditionStatus(str, Enum):
    """Status of a condition."""

    TRUE = "True"
    FALSE = "False"
    UNKNOWN = "Unknown"


class UpgradeType(str, Enum):
    """Which cluster upgrader implementation performs the upgrade."""

    OSD = "OSD"
    ARO = "ARO"


class UpgradeConditionType(str, Enum):
    """The steps of an upgrade that are recorded as conditions."""

    SEND_STARTED_NOTIFICATION = "StartedNotificationSent"
    UPGRADE_PRE_HEALTH_CHECK = "ClusterHealthyBeforeUpgrade"
    EXT_DEP_AVAILABILITY_CHECK = "ExternalDependenciesAvailable"
    UPGRADE_SCALE_UP_EXTRA_NODES = "ComputeCapacityReserved"
    CONTROL_PLANE_MAINT_WINDOW = "ControlPlaneMaintenanceWindowCreated"
    COMMENCE_UPGRADE = "UpgradeCommenced"
    CONTROL_PLANE_UPGRADED = "ControlPlaneUpgraded"
    REMOVE_CONTROL_PLANE_MAINT_WINDOW = "ControlPlaneMaintenanceWindowRemoved"
    WORKERS_MAINT_WINDOW = "WorkersMaintenanceWindowCreated"
    ALL_WORKER_NODES_UPGRADED = "WorkerNodesUpgraded"
    REMOVE_EXTRA_SCALED_NODES = "ComputeCapacityRemoved"
    REMOVE_MAINT_WINDOW = "WorkersMaintenanceWindowRemoved"
    POST_CLUSTER_HEALTH_CHECK = "ClusterHealthyAfterUpgrade"
    SEND_COMPLETED_NOTIFICATION = "CompletedNotificationSent"
    IS_CLUSTER_UPGRADABLE = "IsClusterUpgradable"


class UpgradePhase(str, Enum):
    """Phase of an upgrade."""

    NEW = "New"
    PENDING = "Pending"
    UPGRADING = "Upgrading"
    UPGRADED = "Upgraded"
    FAILED = "Failed"
    UNKNOWN = "Unknown"


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Update:
    """The release an upgrade goes to."""

    version: str = ""
    channel: str = ""
    image: str = ""


@dataclass
class UpgradeCondition:
    """State of one step of an upgrade."""

    type: UpgradeConditionType
    status: ConditionStatus = ConditionStatus.UNKNOWN
    last_probe_time: Optional[datetime] = None
    last_transition_time: Optional[datetime] = None
    start_time: Optional[datetime] = None
    complete_time: Optional[datetime] = None
    reason: str = ""
    message: str = ""

    def is_true(self) -> bool:
        return self.status == ConditionStatus.TRUE

    def is_false(self) -> bool:
        return self.status == ConditionStatus.FALSE

    def is_unknown(self) -> bool:
        return self.status == ConditionStatus.UNKNOWN


class Conditions(list):
    """An ordered set of conditions, at most one per condition type."""

    def _find(self, condition_type: UpgradeConditionType) -> Optional[UpgradeCondition]:
        return next((c for c in self if c.type == condition_type), None)

    def is_true_for(self, condition_type: UpgradeConditionType) -> bool:
        found = self._find(condition_type)
        return found is not None and found.is_true()

    def is_false_for(self, condition_type: UpgradeConditionType) -> bool:
        found = self._find(condition_type)
        return found is not None and found.is_false()

    def is_unknown_for(self, condition_type: UpgradeConditionType) -> bool:
        """True when the condition is Unknown or not present at all."""
        found = self._find(condition_type)
        return found is None or found.is_unknown()

    def set_condition(self, condition: UpgradeCondition) -> bool:
        """Add or replace the condition of the same type.

        Returns whether the condition is new or its status, reason or
        message changed.
        """
        now = _now()
        new = dataclasses.replace(condition, last_transition_time=now, last_probe_time=now)
        for i, existing in enumerate(self):
            if existing.type == new.type:
                if existing.status == new.status:
                    new.last_transition_time = existing.last_transition_time
                changed = (
                    existing.status != new.status
                    or existing.reason != new.reason
                    or existing.message != new.message
                )
                self[i] = new
                return changed
        self.insert(0, new)
        return True

    def get_condition(self, condition_type: UpgradeConditionType) -> Optional[UpgradeCondition]:
        """Return a copy of the condition of that type, or None."""
        found = self._find(condition_type)
        return copy.deepcopy(found) if found is not None else None

    def remove_condition(self, condition_type: UpgradeConditionType) -> bool:
        for i, existing in enumerate(self):
            if existing.type == condition_type:
                del self[i]
                return True
        return False


def new_conditions(*args: UpgradeCondition) -> Conditions:
    """Build a condition set from the given conditions."""
    conditions = Conditions()
    for condition in args:
        conditions.set_condition(condition)
    return conditions


@dataclass
class UpgradeHistory:
    """Record of one upgrade attempt."""

    version: str = ""
    phase: UpgradePhase = UpgradePhase.NEW
    conditions: Conditions = field(default_factory=Conditions)
    start_time: Optional[datetime] = None
    complete_time: Optional[datetime] = None
    worker_start_time: Optional[datetime] = None
    worker_complete_time: Optional[datetime] = None


class UpgradeHistories(list):
    """The upgrade records of an UpgradeConfig, most recent first."""

    def __init__(self, items: Iterable[UpgradeHistory] = ()) -> None:
        super().__init__(items)

    def get_history(self, version: str) -> Optional[UpgradeHistory]:
        """Return a copy of the record for a version, or None.

        Changes to the copy are kept only after passing it to set_history.
        """
        found = next((h for h in self if h.version == version), None)
        return copy.deepcopy(found) if found is not None else None

    def set_history(self, history: UpgradeHistory) -> None:
        """Replace the record of the same version, or put it first."""
        for i, existing in enumerate(self):
            if existing.version == history.version:
                self[i] = history
                return
        self.insert(0, history)


@dataclass
class UpgradeConfigSpec:
    """Desired state of an UpgradeConfig."""

    desired: Update = field(default_factory=Update)
    upgrade_at: str = ""
    pdb_force_drain_timeout: int = 0
    type: UpgradeType = UpgradeType.OSD
    capacity_reservation: bool = False


@dataclass
class UpgradeConfigStatus:
    """Observed state of an UpgradeConfig."""

    history: UpgradeHistories = field(default_factory=UpgradeHistories)

    def __post_init__(self) -> None:
        if not isinstance(self.history, UpgradeHistories):
            self.history = UpgradeHistories(self.history)


@dataclass
class ObjectMeta:
    """Identifying metadata of a cluster object."""

    name: str = ""
    namespace: str = ""
    labels: dict = field(default_factory=dict)


@dataclass
class UpgradeConfig:
    """The UpgradeConfig resource."""

    metadata: ObjectMeta = field(default_factory=ObjectMeta)
    spec: UpgradeConfigSpec = field(default_factory=UpgradeConfigSpec)
    status: UpgradeConfigStatus = field(default_factory=UpgradeConfigStatus)

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def namespace(self) -> str:
        return self.metadata.namespace

    def pdb_drain_timeout(self) -> timedelta:
        """The PDB force-drain grace period."""
        return timedelta(minutes=self.spec.pdb_force_drain_timeout)


@dataclass
class UpgradeConfigList:
    """A list of UpgradeConfig resources."""

    items: list = field(default_factory=list)