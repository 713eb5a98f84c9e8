"""
ChainRelay — Endpoint Clients

The relay never touches an endpoint directly; it goes through an
EndpointClient. The interface is the subset of a chain RPC the relay needs:
head block, logs, receipts, and submitting the two transactions it sends
(validate and execute).

InMemoryEndpointClient adapts a BridgeEndpoint on an in-process ledger.
Submission errors raised by the endpoint propagate unchanged; the
orchestrator decides what they mean for the attempt.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from chainrelay.systems.bridge.endpoint import BridgeEndpoint
    from chainrelay.systems.ledger.types import LogEntry, Receipt


class EndpointClient(ABC):
    """Relay-side view of one bridge endpoint."""

    name: str = ""
    chain_id: int = 0
    address: str = ""

    @abstractmethod
    async def block_number(self) -> int:
        ...

    @abstractmethod
    async def get_logs(self, from_block: int, to_block: int) -> list[LogEntry]:
        """Logs emitted by the endpoint contract in [from_block, to_block]."""
        ...

    @abstractmethod
    async def get_receipt(self, tx_hash: bytes) -> Receipt:
        ...

    @abstractmethod
    async def submit_validation(self, position: int, attestation: bytes) -> Receipt:
        ...

    @abstractmethod
    async def submit_execution(self, action_id: bytes) -> Receipt:
        ...

    async def close(self) -> None:
        return None

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.name} chain_id={self.chain_id}>"


class InMemoryEndpointClient(EndpointClient):
    def __init__(self, endpoint: BridgeEndpoint, name: str = "") -> None:
        self._endpoint = endpoint
        self.name = name or endpoint.ledger.name
        self.chain_id = endpoint.chain_id
        self.address = endpoint.address

    @property
    def endpoint(self) -> BridgeEndpoint:
        return self._endpoint

    async def block_number(self) -> int:
        return self._endpoint.ledger.block_number

    async def get_logs(self, from_block: int, to_block: int) -> list[LogEntry]:
        return self._endpoint.ledger.get_logs(from_block, to_block, address=self.address)

    async def get_receipt(self, tx_hash: bytes) -> Receipt:
        return self._endpoint.ledger.get_receipt(tx_hash)

    async def submit_validation(self, position: int, attestation: bytes) -> Receipt:
        return await self._endpoint.validate(position, attestation)

    async def submit_execution(self, action_id: bytes) -> Receipt:
        return await self._endpoint.execute(action_id)
