from modelci.common.config import RuntimeConfig, WorkPaths
from modelci.common.container import ContainerRunner, ContainerSpec

__all__ = [
    "ContainerRunner",
    "ContainerSpec",
    "RuntimeConfig",
    "WorkPaths",
]
