"""
Chat wallet module.

Wallet creation, key escrow, funding and Basename registration.
"""

from .basename import (
    build_register_call_data,
    build_register_request,
    generate_agent_name,
    namehash,
)
from .provisioner import ProvisionResult, WalletProvisioner

__all__ = [
    "WalletProvisioner",
    "ProvisionResult",
    "generate_agent_name",
    "namehash",
    "build_register_request",
    "build_register_call_data",
]
