"""
ChainRelay — External Service Clients
"""

from chainrelay.clients.proof_service import (
    JobId,
    ProofService,
    ProofServiceClient,
    ProofServiceError,
    ProofStatus,
)

__all__ = [
    "JobId",
    "ProofService",
    "ProofServiceClient",
    "ProofServiceError",
    "ProofStatus",
]
