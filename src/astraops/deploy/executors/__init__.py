"""Phase executors, one per tool family.

Related Modules:
    - :mod:`astraops.deploy.executors.infrastructure` - terraform apply/destroy
    - :mod:`astraops.deploy.executors.application` - kubectl rollout
    - :mod:`astraops.deploy.executors.monitoring` - helm monitoring stack
"""

from astraops.deploy.executors.application import ApplicationApplyExecutor
from astraops.deploy.executors.base import ExecutorResult, PhaseExecutor
from astraops.deploy.executors.infrastructure import (
    InfrastructureApplyExecutor,
    InfrastructureDestroyExecutor,
    InfrastructureState,
    InfrastructureStateProbe,
)
from astraops.deploy.executors.monitoring import MonitoringSetupExecutor

__all__ = [
    "ApplicationApplyExecutor",
    "ExecutorResult",
    "InfrastructureApplyExecutor",
    "InfrastructureDestroyExecutor",
    "InfrastructureState",
    "InfrastructureStateProbe",
    "MonitoringSetupExecutor",
    "PhaseExecutor",
]
