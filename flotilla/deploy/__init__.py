"""Deploy library: request parameters and deploy orchestration."""

from flotilla.deploy.orchestrate import (
    ALREADY_DEPLOYED,
    WILL_DEPLOY,
    WILL_REDEPLOY,
    DeployOutcome,
    Deployer,
)
from flotilla.deploy.params import DeployRequest

__all__ = [
    "ALREADY_DEPLOYED",
    "WILL_DEPLOY",
    "WILL_REDEPLOY",
    "DeployOutcome",
    "DeployRequest",
    "Deployer",
]
