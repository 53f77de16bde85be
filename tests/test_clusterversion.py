import copy
from datetime import datetime, timedelta, timezone

import pytest

from managed_upgrade.api import (
    ConditionStatus,
    NotFoundError,
    ObjectMeta,
    Update,
    UpgradeConfig,
    UpgradeConfigSpec,
)
from managed_upgrade.clusterversion import (
    CLUSTER_VERSION_NAME,
    UPDATE_STATE_COMPLETED,
    UPDATE_STATE_PARTIAL,
    ClusterOperator,
    ClusterVersion,
    ClusterVersionClient,
    ClusterVersionSpec,
    ClusterVersionStatus,
    DesiredUpdate,
    OperatorCondition,
    Release,
    UpdateHistory,
    UpgradeSource,
    check_upgrade_source,
    get_current_version,
    get_current_version_minus_one,
    get_history,
)


class FakeClient:
    def __init__(self, versions=(), operators=(), error=None):
        self.versions = list(versions)
        self.operators = list(operators)
        self.error = error
        self.updates = []

    def get(self, kind, name, namespace=""):
        if self.error is not None:
            raise self.error
        return copy.deepcopy(self.versions.pop(0))

    def update(self, obj):
        self.updates.append(copy.deepcopy(obj))

    def list(self, kind):
        return list(self.operators)


@pytest.fixture
def upgrade_config():
    return UpgradeConfig(
        metadata=ObjectMeta(name="test-upgradeconfig", namespace="test-namespace"),
        spec=UpgradeConfigSpec(
            desired=Update(version="4.4.4", channel="stable-4.4"),
            upgrade_at="2020-06-20T00:00:00Z",
        ),
    )


def test_get_cluster_version():
    client = FakeClient([ClusterVersion(metadata=ObjectMeta(name=CLUSTER_VERSION_NAME))])
    cv = ClusterVersionClient(client).get_cluster_version()
    assert cv.name == "version"


def test_get_cluster_version_not_found():
    client = FakeClient(error=NotFoundError("ClusterVersion version not found"))
    with pytest.raises(NotFoundError):
        ClusterVersionClient(client).get_cluster_version()


def test_upgrade_commenced_when_version_matches(upgrade_config):
    cv = ClusterVersion(
        spec=ClusterVersionSpec(
            channel="stable-4.4", desired_update=DesiredUpdate(version="4.4.4")
        )
    )
    assert ClusterVersionClient(FakeClient([cv])).has_upgrade_commenced(upgrade_config) is True


def test_upgrade_not_commenced_without_desired_update(upgrade_config):
    cv = ClusterVersion(spec=ClusterVersionSpec(channel="stable-4.4"))
    assert ClusterVersionClient(FakeClient([cv])).has_upgrade_commenced(upgrade_config) is False


def test_updates_channel_when_different(upgrade_config):
    cv = ClusterVersion(spec=ClusterVersionSpec(channel="stable-4.4not-the-same"))
    updated = ClusterVersion(
        spec=ClusterVersionSpec(channel="stable-4.4"),
        status=ClusterVersionStatus(
            available_updates=[Release(version="4.4.4", image="quay.io/this-doesnt-exist")]
        ),
    )
    client = FakeClient([cv, updated])
    assert ClusterVersionClient(client).ensure_desired_config(upgrade_config) is True
    assert len(client.updates) == 2
    assert client.updates[0].spec.channel == "stable-4.4"
    assert client.updates[1].spec.channel == "stable-4.4"
    assert client.updates[1].spec.desired_update.version == "4.4.4"


@pytest.mark.parametrize("desired_update", [None, DesiredUpdate(version="something different")])
def test_sets_desired_version(upgrade_config, desired_update):
    cv = ClusterVersion(
        spec=ClusterVersionSpec(channel="stable-4.4", desired_update=desired_update),
        status=ClusterVersionStatus(
            available_updates=[Release(version="4.4.4", image="quay.io/dummy-image-for-test")]
        ),
    )
    client = FakeClient([cv])
    assert ClusterVersionClient(client).ensure_desired_config(upgrade_config) is True
    assert len(client.updates) == 1
    assert client.updates[0].spec.desired_update.version == "4.4.4"
    assert client.updates[0].spec.channel == "stable-4.4"


def test_not_triggered_when_release_unavailable(upgrade_config):
    cv = ClusterVersion(spec=ClusterVersionSpec(channel="stable-4.4"))
    client = FakeClient([cv])
    assert ClusterVersionClient(client).ensure_desired_config(upgrade_config) is False
    assert client.updates == []


def test_no_degraded_operators():
    operators = [
        ClusterOperator("operator1", [OperatorCondition("Available", ConditionStatus.TRUE)]),
        ClusterOperator("operator2", [OperatorCondition("Degraded", ConditionStatus.FALSE)]),
    ]
    result = ClusterVersionClient(FakeClient(operators=operators)).has_degraded_operators()
    assert len(result.degraded) == 0


def test_degraded_operators():
    operators = [
        ClusterOperator("I'm a broken operator", [OperatorCondition("Degraded", ConditionStatus.TRUE)]),
        ClusterOperator(
            "I'm an unavailable operator", [OperatorCondition("Available", ConditionStatus.FALSE)]
        ),
    ]
    result = ClusterVersionClient(FakeClient(operators=operators)).has_degraded_operators()
    assert result.degraded == ["I'm a broken operator", "I'm an unavailable operator"]


@pytest.mark.parametrize(
    "desired_update",
    [DesiredUpdate(version="Some version"), DesiredUpdate(image="quay.io/test/test-image2")],
)
def test_sets_desired_image(upgrade_config, desired_update):
    upgrade_config.spec.desired.image = "quay.io/test/test-image"
    cv = ClusterVersion(spec=ClusterVersionSpec(channel="stable-4.4", desired_update=desired_update))
    client = FakeClient([cv])
    assert ClusterVersionClient(client).ensure_desired_config(upgrade_config) is True
    assert client.updates[0].spec.desired_update.image == "quay.io/test/test-image"
    assert client.updates[0].spec.desired_update.version == ""


def test_image_matches_commenced(upgrade_config):
    upgrade_config.spec.desired.image = "quay.io/test/test-image"
    cv = ClusterVersion(
        spec=ClusterVersionSpec(
            channel="stable-4.4", desired_update=DesiredUpdate(image="quay.io/test/test-image")
        )
    )
    assert ClusterVersionClient(FakeClient([cv])).has_upgrade_commenced(upgrade_config) is True


def test_has_upgrade_completed(upgrade_config):
    cv = ClusterVersion(
        status=ClusterVersionStatus(
            history=[UpdateHistory(state=UPDATE_STATE_COMPLETED, version="4.4.4")]
        )
    )
    client = ClusterVersionClient(FakeClient())
    assert client.has_upgrade_completed(cv, upgrade_config) is True
    cv.status.history[0].state = UPDATE_STATE_PARTIAL
    assert client.has_upgrade_completed(cv, upgrade_config) is False


def test_check_upgrade_source(upgrade_config):
    assert check_upgrade_source(upgrade_config) is UpgradeSource.CHANNEL_VERSION
    upgrade_config.spec.desired.image = "quay.io/test/test-image"
    assert check_upgrade_source(upgrade_config) is UpgradeSource.IMAGE
    upgrade_config.spec.desired = Update(version="4.4.4")
    with pytest.raises(ValueError):
        check_upgrade_source(upgrade_config)


def _cv_with_history():
    now = datetime(2021, 1, 1, tzinfo=timezone.utc)
    return ClusterVersion(
        status=ClusterVersionStatus(
            history=[
                UpdateHistory(state=UPDATE_STATE_COMPLETED, version="4.4.4", completion_time=now),
                UpdateHistory(
                    state=UPDATE_STATE_COMPLETED,
                    version="new version",
                    completion_time=now + timedelta(hours=1),
                ),
                UpdateHistory(state=UPDATE_STATE_PARTIAL, version="partial"),
            ]
        )
    )


def test_current_versions():
    cv = _cv_with_history()
    assert get_current_version(cv) == "new version"
    assert get_current_version_minus_one(cv) == "4.4.4"


def test_current_version_errors():
    cv = ClusterVersion()
    with pytest.raises(ValueError):
        get_current_version(cv)
    cv.status.history = [UpdateHistory(state=UPDATE_STATE_COMPLETED, version="4.4.4")]
    assert get_current_version(cv) == "4.4.4"
    with pytest.raises(ValueError, match="only one version"):
        get_current_version_minus_one(cv)


def test_get_history():
    cv = _cv_with_history()
    assert get_history(cv, "partial").state == UPDATE_STATE_PARTIAL
    assert get_history(cv, "missing") is None