from .external import ExternalProvisioningClient
from .v0 import GenerationClient
from .vercel import DeploymentClient

__all__ = ["ExternalProvisioningClient", "GenerationClient", "DeploymentClient"]
