"""Prometheus-style metrics that describe the progress of an upgrade."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterator, Optional, Protocol, Union

from managed_upgrade.api import (
    ConditionStatus,
    UpgradeCondition,
    UpgradeConditionType,
    UpgradeConfig,
    UpgradeConfigNotFoundError,
)
from managed_upgrade.clusterversion import (
    ClusterVersion,
    get_current_version,
    get_current_version_minus_one,
)

METRICS_NAMESPACE = "managed_upgrade"
_SUBSYSTEM_UPGRADE = "upgrade"
_SUBSYSTEM_COLLECTOR = "collector"
_SUBSYSTEM_CONDITION = "condition"

KEY_PHASE = "phase"
KEY_UPGRADE_CONFIG_NAME = "upgradeconfig_name"
KEY_VERSION = "version"
KEY_DESIRED_VERSION = "desired_version"
KEY_CONDITION = "condition"

_SPEC_LABELS = (KEY_VERSION, KEY_DESIRED_VERSION, KEY_PHASE)
_PDB_LABELS = (KEY_VERSION, KEY_DESIRED_VERSION)
_CONDITION_LABELS = (KEY_UPGRADE_CONFIG_NAME, KEY_VERSION, KEY_DESIRED_VERSION, KEY_CONDITION)

_HELP_COLLECTOR_FAILED = "An error occurred during scape of metrics"


def _fq_name(*parts: str) -> str:
    return "_".join(part for part in parts if part)


@dataclass(frozen=True)
class MetricDesc:
    """Name, help text and label names of a metric."""

    fq_name: str
    help: str
    label_names: tuple[str, ...] = ()


@dataclass(frozen=True)
class Metric:
    """A gauge sample of a described metric."""

    desc: MetricDesc
    value: float
    label_values: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if len(self.label_values) != len(self.desc.label_names):
            raise ValueError(
                f"{self.desc.fq_name}: expected {len(self.desc.label_names)} label values, "
                f"got {len(self.label_values)}"
            )

    @property
    def labels(self) -> dict[str, str]:
        return dict(zip(self.desc.label_names, self.label_values))


@dataclass(frozen=True)
class InvalidMetric:
    """Reports that a scrape failed."""

    desc: MetricDesc
    error: BaseException


# (key, subsystem, name suffix, help, labels), in the order they are described.
_METRIC_DEFINITIONS = (
    ("upgrade_at", _SUBSYSTEM_UPGRADE, "scheduled",
     "Unix Timestamp indicating when the upgrade will execute", _SPEC_LABELS),
    ("pdb_timeout", _SUBSYSTEM_UPGRADE, "pdb_timeout_minutes",
     "Int indicating when the value of PDB timeout in minutes", _PDB_LABELS),
    ("start_time", _SUBSYSTEM_UPGRADE, "start_timestamp",
     "Timestamp of when an upgrade starts", _SPEC_LABELS),
    ("complete_time", _SUBSYSTEM_UPGRADE, "complete_timestamp",
     "Timestamp of when an upgrade completes entirely", _SPEC_LABELS),
    (UpgradeConditionType.SEND_STARTED_NOTIFICATION, _SUBSYSTEM_CONDITION,
     "notification_start_timestamp",
     "Unix Timestamp indicating time of start upgrade notification event", _CONDITION_LABELS),
    (UpgradeConditionType.UPGRADE_PRE_HEALTH_CHECK, _SUBSYSTEM_CONDITION,
     "health_check_timestamp",
     "Unix Timestamp indicating time of cluster health check", _CONDITION_LABELS),
    (UpgradeConditionType.EXT_DEP_AVAILABILITY_CHECK, _SUBSYSTEM_CONDITION,
     "external_dep_check_timestamp",
     "Unix Timestamp indicating time of external dependency availability check",
     _CONDITION_LABELS),
    (UpgradeConditionType.UPGRADE_SCALE_UP_EXTRA_NODES, _SUBSYSTEM_CONDITION,
     "capacity_added_timestamp",
     "Unix Timestamp indicating time of additional compute added", _CONDITION_LABELS),
    (UpgradeConditionType.CONTROL_PLANE_MAINT_WINDOW, _SUBSYSTEM_CONDITION,
     "control_plane_maint_start_timestamp",
     "Unix Timestamp indicating start time of control plane maintenance", _CONDITION_LABELS),
    (UpgradeConditionType.COMMENCE_UPGRADE, _SUBSYSTEM_CONDITION,
     "control_plane_upgrade_start_timestamp",
     "Unix Timestamp indicating start time of upgrade", _CONDITION_LABELS),
    (UpgradeConditionType.CONTROL_PLANE_UPGRADED, _SUBSYSTEM_CONDITION,
     "control_plane_completion_timestamp",
     "Unix Timestamp indicating completion of upgrade upgrade", _CONDITION_LABELS),
    (UpgradeConditionType.REMOVE_CONTROL_PLANE_MAINT_WINDOW, _SUBSYSTEM_CONDITION,
     "control_plane_maint_removed_timestamp",
     "Unix Timestamp indicating removal of control plane maintenance window",
     _CONDITION_LABELS),
    (UpgradeConditionType.WORKERS_MAINT_WINDOW, _SUBSYSTEM_CONDITION,
     "workers_maint_start_timestamp",
     "Unix Timestamp indicating start time of workers maintenance", _CONDITION_LABELS),
    (UpgradeConditionType.ALL_WORKER_NODES_UPGRADED, _SUBSYSTEM_CONDITION,
     "workers_upgraded_timestamp",
     "Unix Timestamp indicating all worker nodes have upgraded", _CONDITION_LABELS),
    (UpgradeConditionType.REMOVE_EXTRA_SCALED_NODES, _SUBSYSTEM_CONDITION,
     "capacity_removed_timestamp",
     "Unix Timestamp indicating time of addtional compute removed", _CONDITION_LABELS),
    (UpgradeConditionType.REMOVE_MAINT_WINDOW, _SUBSYSTEM_CONDITION,
     "workers_maint_removed_timestamp",
     "Unix Timestamp indicating end of workers maintenace", _CONDITION_LABELS),
    (UpgradeConditionType.POST_CLUSTER_HEALTH_CHECK, _SUBSYSTEM_CONDITION,
     "post_upgrade_healthcheck_timestamp",
     "Unix Timestamp indicating time of post cluster health check", _CONDITION_LABELS),
    (UpgradeConditionType.SEND_COMPLETED_NOTIFICATION, _SUBSYSTEM_CONDITION,
     "notification_complete_timestamp",
     "Unix Timestamp indicating time of complete upgrade notification event",
     _CONDITION_LABELS),
)

MetricKey = Union[str, UpgradeConditionType]


def bootstrap_metrics() -> dict[MetricKey, MetricDesc]:
    """All metric descriptions, keyed by spec/status field or condition type."""
    return {
        key: MetricDesc(_fq_name(METRICS_NAMESPACE, subsystem, name), help_text, labels)
        for key, subsystem, name, help_text, labels in _METRIC_DEFINITIONS
    }


class UpgradeConfigSource(Protocol):
    def get(self) -> UpgradeConfig:
        ...


class ClusterVersionSource(Protocol):
    def get_cluster_version(self) -> ClusterVersion:
        ...


def _parse_rfc3339(text: str) -> datetime:
    value = text.strip()
    if value[-1:] in ("Z", "z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        raise ValueError(f"timestamp {text!r} has no time zone offset")
    return parsed


def _unix(ts: datetime) -> float:
    return float(int(ts.timestamp()))


class UpgradeCollector:
    """Collects upgrade metrics from the current UpgradeConfig."""

    def __init__(
        self,
        upgrade_config_manager: UpgradeConfigSource,
        cv_client: ClusterVersionSource,
        managed_metrics: Optional[dict[MetricKey, MetricDesc]] = None,
    ) -> None:
        self.upgrade_config_manager = upgrade_config_manager
        self.cv_client = cv_client
        self.managed_metrics = managed_metrics if managed_metrics is not None else bootstrap_metrics()

    def describe(self) -> Iterator[MetricDesc]:
        """Every metric description this collector may produce."""
        yield from self.managed_metrics.values()

    def collect(self) -> Iterator[Union[Metric, InvalidMetric]]:
        """Current metric samples; a failed scrape ends with an InvalidMetric."""
        try:
            yield from self._collect_upgrade_conditions()
        except Exception as exc:  # every scrape failure is reported, not raised
            yield InvalidMetric(
                MetricDesc(
                    _fq_name(METRICS_NAMESPACE, _SUBSYSTEM_COLLECTOR, "scrape_failed"),
                    _HELP_COLLECTOR_FAILED,
                ),
                exc,
            )

    def _collect_upgrade_conditions(self) -> Iterator[Metric]:
        try:
            upgrade_config = self.upgrade_config_manager.get()
        except UpgradeConfigNotFoundError:
            return
        except Exception as exc:
            raise RuntimeError(f"unable to find UpgradeConfig: {exc}") from exc

        cluster_version = self.cv_client.get_cluster_version()
        cv_version = get_current_version(cluster_version)
        desired_version = upgrade_config.spec.desired.version

        # Once the control plane is upgraded, keep labelling with the source version.
        if desired_version == cv_version:
            cv_version = get_current_version_minus_one(cluster_version)

        history = upgrade_config.status.history.get_history(desired_version)
        if history is None:
            raise RuntimeError("no upgrade history yet")

        yield from self._collect_spec(upgrade_config, cv_version, history.phase.value)
        yield from self._collect_status(upgrade_config, cv_version, history)

        for condition in history.conditions:
            desc = self.managed_metrics.get(condition.type)
            if desc is not None:
                yield from self._collect_condition(condition, desc, upgrade_config, cv_version)

    def _collect_spec(self, ucfg: UpgradeConfig, cv_version: str, phase: str) -> Iterator[Metric]:
        upgrade_time = _parse_rfc3339(ucfg.spec.upgrade_at)
        desired = ucfg.spec.desired.version
        yield Metric(self.managed_metrics["upgrade_at"], _unix(upgrade_time), (cv_version, desired, phase))
        yield Metric(
            self.managed_metrics["pdb_timeout"],
            float(ucfg.spec.pdb_force_drain_timeout),
            (cv_version, desired),
        )

    def _collect_status(self, ucfg: UpgradeConfig, cv_version: str, history: Any) -> Iterator[Metric]:
        labels = (cv_version, ucfg.spec.desired.version, history.phase.value)
        if history.start_time is not None:
            yield Metric(self.managed_metrics["start_time"], _unix(history.start_time), labels)
        if history.complete_time is not None:
            yield Metric(self.managed_metrics["complete_time"], _unix(history.complete_time), labels)

    @staticmethod
    def _collect_condition(
        condition: UpgradeCondition, desc: MetricDesc, ucfg: UpgradeConfig, cv_version: str
    ) -> Iterator[Metric]:
        if condition.status == ConditionStatus.TRUE:
            ts = condition.complete_time
        elif condition.status in (ConditionStatus.FALSE, ConditionStatus.UNKNOWN):
            ts = condition.start_time
        else:
            return
        if ts is None:
            return
        yield Metric(
            desc,
            _unix(ts),
            (ucfg.name, cv_version, ucfg.spec.desired.version, ConditionStatus(condition.status).value),
        )