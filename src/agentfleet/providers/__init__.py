"""Provider clients: list, terminate and poll compute instances."""

from agentfleet.providers.base import ComputeClient, TransientProviderError
from agentfleet.providers.gce import GceComputeClient

__all__ = ["ComputeClient", "TransientProviderError", "GceComputeClient"]
