"""Capability descriptors, tool table and provider clients."""

from .capability import CapabilityClient, MCPCapabilityClient, RetryPolicy
from .catalog import CapabilityDescriptor, ToolTable

__all__ = [
    "CapabilityClient",
    "CapabilityDescriptor",
    "MCPCapabilityClient",
    "RetryPolicy",
    "ToolTable",
]
