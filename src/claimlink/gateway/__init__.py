"""Signer service gateway.

- SignerGateway: abstract request/response interface
- SignerServiceGateway: validation and retries over a transport
- Http/Subprocess/InProcess transports
"""

from claimlink.gateway.base import (
    DepositParams,
    RedemptionResult,
    RegistrationResult,
    SignerGateway,
    SignerOperation,
)
from claimlink.gateway.service import SignerServiceGateway
from claimlink.gateway.transports import (
    HttpSignerTransport,
    InProcessSignerTransport,
    SignerTransport,
    SubprocessSignerTransport,
)

__all__ = [
    "DepositParams",
    "RedemptionResult",
    "RegistrationResult",
    "SignerGateway",
    "SignerOperation",
    "SignerServiceGateway",
    "SignerTransport",
    "HttpSignerTransport",
    "SubprocessSignerTransport",
    "InProcessSignerTransport",
]
