"""
astraops - deployment orchestration backend.

Drives multi-phase infrastructure and application deployments by running
terraform, kubectl, helm and the aws CLI as child processes, and streams
their progress to any number of live viewers.

Packages:
    astraops.core    logging, errors, settings, the log fan-out bus
    astraops.jobs    job store, orchestrator, streaming gateway
    astraops.deploy  process runner, manifests, phase executors
    astraops.api     FastAPI transport
    astraops.cli     Typer command line
"""

__version__ = "0.3.0"
