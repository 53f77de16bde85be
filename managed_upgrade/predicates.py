"""Event filters for the operator's controllers."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from managed_upgrade.api import ObjectMeta, UpgradeConfig

logger = logging.getLogger(__name__)

MASTER_LABEL = "node-role.kubernetes.io/master"
WORKER_POOL_NAME = "worker"


@dataclass
class Node:
    """A cluster node."""

    metadata: ObjectMeta = field(default_factory=ObjectMeta)


@dataclass
class MachineConfigPool:
    """A pool of machines sharing a machine configuration."""

    metadata: ObjectMeta = field(default_factory=ObjectMeta)
    machine_count: int = 0
    updated_machine_count: int = 0


@dataclass(frozen=True)
class Predicate:
    """Decides which events reach a controller.

    An event kind with no function set is let through.
    """

    create_func: Optional[Callable[[Any], bool]] = None
    update_func: Optional[Callable[[Any, Any], bool]] = None
    delete_func: Optional[Callable[[Any], bool]] = None
    generic_func: Optional[Callable[[Any], bool]] = None

    def create(self, obj: Any) -> bool:
        return True if self.create_func is None else self.create_func(obj)

    def update(self, old: Any, new: Any) -> bool:
        return True if self.update_func is None else self.update_func(old, new)

    def delete(self, obj: Any) -> bool:
        return True if self.delete_func is None else self.delete_func(obj)

    def generic(self, obj: Any) -> bool:
        return True if self.generic_func is None else self.generic_func(obj)


def is_worker_pool(name: str) -> bool:
    return name == WORKER_POOL_NAME


def has_master_label(labels: Optional[dict]) -> bool:
    return MASTER_LABEL in (labels or {})


def _pool_is_worker(obj: Any) -> bool:
    return is_worker_pool(obj.metadata.name)


def _not_master(obj: Any) -> bool:
    return not has_master_label(obj.metadata.labels)


IS_WORKER_PREDICATE = Predicate(
    create_func=_pool_is_worker,
    update_func=lambda old, new: isinstance(new, MachineConfigPool) and _pool_is_worker(new),
    delete_func=_pool_is_worker,
    generic_func=_pool_is_worker,
)

IGNORE_MASTER_PREDICATE = Predicate(
    create_func=_not_master,
    update_func=lambda old, new: isinstance(new, Node) and _not_master(new),
    delete_func=_not_master,
    generic_func=_not_master,
)


def _status_unchanged(old: Any, new: Any) -> bool:
    if old is None:
        logger.error("Update event has no old runtime object to update")
        return False
    if new is None:
        logger.error("Update event has no new runtime object for update")
        return False
    if not isinstance(old, UpgradeConfig) or not isinstance(new, UpgradeConfig):
        logger.error("Update event does not carry UpgradeConfig objects")
        return False
    return new.status == old.status


STATUS_CHANGED_PREDICATE = Predicate(update_func=_status_unchanged)