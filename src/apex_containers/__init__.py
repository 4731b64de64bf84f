"""apex-containers: container lifecycle orchestration for automated task execution."""

from __future__ import annotations

from typing import TYPE_CHECKING

__version__ = "0.1.0"

if TYPE_CHECKING:
    from apex_containers.containers.manager import ContainerManager as ContainerManager
    from apex_containers.containers.models import CreationRequest as CreationRequest
    from apex_containers.containers.models import EnvironmentConfig as EnvironmentConfig
    from apex_containers.images.builder import ImageBuilder as ImageBuilder
    from apex_containers.runtime.selector import ContainerRuntime as ContainerRuntime

_LAZY_EXPORTS = {
    "ContainerManager": "apex_containers.containers.manager",
    "CreationRequest": "apex_containers.containers.models",
    "EnvironmentConfig": "apex_containers.containers.models",
    "ImageBuilder": "apex_containers.images.builder",
    "ContainerRuntime": "apex_containers.runtime.selector",
}


def __getattr__(name: str) -> object:
    module_path = _LAZY_EXPORTS.get(name)
    if module_path is not None:
        import importlib

        mod = importlib.import_module(module_path)
        return getattr(mod, name)
    raise AttributeError(f"module 'apex_containers' has no attribute {name!r}")
