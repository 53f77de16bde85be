# managed_upgrade

Building blocks for driving and observing managed cluster upgrades: a data
model for upgrade configurations, helpers for the cluster's ClusterVersion,
HTTP availability checks of external dependencies, an Alertmanager silence
client, event predicates and an upgrade metrics collector.

## Installation

```
pip install .
```

To run the tests, install the test extra as well:

```
pip install ".[test]"
pytest
```

## Modules

- `managed_upgrade.api`: the upgrade-configuration model. It provides
  `UpgradeConfig` (with `UpgradeConfigSpec`, `UpgradeConfigStatus`,
  `ObjectMeta` and `Update`), `UpgradeHistory` and `UpgradeHistories`
  (`get_history` returns a copy; `set_history` stores it back or puts a new
  record first), `UpgradeCondition`, `Conditions` and `new_conditions`, the
  enums `UpgradePhase`, `UpgradeConditionType`, `UpgradeType` and
  `ConditionStatus`, and the errors `NotFoundError`,
  `UpgradeConfigNotFoundError` and `NotConfiguredError`.
  `UpgradeConfig.pdb_drain_timeout()` gives the PDB force-drain grace period
  as a `timedelta`.
- `managed_upgrade.availability`: HTTP checks of external dependencies.
  `ExtDependencyAvailabilityCheck.from_mapping` reads an `http` section
  (`timeout` in seconds, default 15, and `urls`);
  `get_availability_checkers` builds the checkers it asks for.
  `HTTPAvailabilityChecker.availability_check` probes all targets
  concurrently and raises `AvailabilityError` on failure: server errors (5xx)
  and connection errors are retried with jittered backoff by `retry`, client
  errors (4xx) stop at once through `StopRetry`.
- `managed_upgrade.alertmanager`: `AlertManagerSilenceClient(base_url)` talks
  to the Alertmanager v2 API to `create`, `list`, `get`, `delete`, `update`
  (replace with a new end time, removing the old silence if it is active) and
  `filter` silences (`Silence`, `Matcher`). Failures raise
  `AlertManagerError`.
- `managed_upgrade.clusterversion`: `ClusterVersionClient` wraps any client
  object offering `get(kind, name)`, `update(obj)` and `list(kind)`. It reads the
  ClusterVersion, points it at the desired release by image or by channel
  and version (`ensure_desired_config`), tells whether an upgrade has
  commenced or completed, and lists degraded cluster operators. The helpers
  are `get_history`, `get_current_version`, `get_current_version_minus_one`
  and `check_upgrade_source`.
- `managed_upgrade.predicates`: `Predicate` event filters and the ready-made
  `IS_WORKER_PREDICATE` (machine config pools named `worker`),
  `IGNORE_MASTER_PREDICATE` (nodes without the master role label) and
  `STATUS_CHANGED_PREDICATE` (lets an UpgradeConfig update through only when
  its status is unchanged), plus `is_worker_pool` and `has_master_label`.
- `managed_upgrade.collector`: `UpgradeCollector` turns the current
  UpgradeConfig's progress into gauge samples (`Metric`). `describe()` yields
  the `MetricDesc` entries from `bootstrap_metrics()`; `collect()` yields
  samples, nothing when no UpgradeConfig exists, and an `InvalidMetric` when
  a scrape fails.

## Example

```python
from managed_upgrade.api import (
    ConditionStatus, UpgradeCondition, UpgradeConditionType, new_conditions,
)

conditions = new_conditions(
    UpgradeCondition(
        type=UpgradeConditionType.UPGRADE_PRE_HEALTH_CHECK,
        status=ConditionStatus.TRUE,
    )
)
assert conditions.is_true_for(UpgradeConditionType.UPGRADE_PRE_HEALTH_CHECK)
assert conditions.is_unknown_for(UpgradeConditionType.COMMENCE_UPGRADE)
```

## What this package does not do

It is a library, not a running operator. There is no command to start, no
reconcile loop that watches the cluster and performs upgrades, and no loading
of operator settings from a ConfigMap. It holds no Kubernetes client of its
own: cluster access comes from the client object you pass to
`ClusterVersionClient`. `UpgradeCollector` produces samples but does not
serve them over HTTP or register them with a metrics library.