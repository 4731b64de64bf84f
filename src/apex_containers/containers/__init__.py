"""Container subsystem: models, command construction, lifecycle events and the manager."""

from apex_containers.containers.events import (
    LifecycleEvent,
    LifecycleNotifier,
    LifecycleOperation,
)
from apex_containers.containers.manager import ContainerManager
from apex_containers.containers.models import (
    ContainerInfo,
    ContainerStatus,
    CreationRequest,
    EnvironmentConfig,
    OperationResult,
    ResourceLimits,
)

__all__ = [
    "ContainerInfo",
    "ContainerManager",
    "ContainerStatus",
    "CreationRequest",
    "EnvironmentConfig",
    "LifecycleEvent",
    "LifecycleNotifier",
    "LifecycleOperation",
    "OperationResult",
    "ResourceLimits",
]
