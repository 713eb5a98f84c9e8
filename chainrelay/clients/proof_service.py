"""
ChainRelay — Attestation Service Client

The attestation (proof) service is an opaque asynchronous API:

  receipt_requestProof(srcChainId, dstChainId, blockNumber, positionInBlock) → jobId
  receipt_queryProof(jobId) → {status, proof?}

`proof` is base64 once the job is done. ProofServiceClient speaks JSON-RPC 2.0
over HTTP with a bearer API key. Any transport error, non-200 response or
JSON-RPC error object is raised as ProofServiceError; the relay treats that
as a hard failure of the attempt.

Usage::

    client = ProofServiceClient(config.prover)
    job_id = await client.request_proof(11155420, 84532, 1234, 3)
    status = await client.query_proof(job_id)
    await client.close()
"""

from __future__ import annotations

import base64
import binascii
import itertools
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

import httpx
import structlog

from chainrelay.primitives.common import RelayBaseModel

if TYPE_CHECKING:
    from chainrelay.config import ProverConfig

logger = structlog.get_logger().bind(system="clients.proof_service")

JobId = int | str

# Terminal job statuses reported by the service
FAILED_STATUSES = frozenset({"failed", "error"})


class ProofServiceError(RuntimeError):
    """The attestation service refused or failed a call."""


class ProofStatus(RelayBaseModel):
    """Snapshot of one proof job."""

    status: str = "unknown"
    proof: str | None = None

    @property
    def ready(self) -> bool:
        return bool(self.proof)

    @property
    def failed(self) -> bool:
        """The job ended without a proof and will never produce one."""
        return not self.proof and self.status.lower() in FAILED_STATUSES

    def proof_bytes(self) -> bytes:
        if not self.proof:
            raise ProofServiceError(f"Proof not ready (status={self.status})")
        try:
            return base64.b64decode(self.proof, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ProofServiceError(f"Proof is not valid base64: {exc}") from exc


class ProofService(ABC):
    """Interface shared by the HTTP client and the in-process prover."""

    @abstractmethod
    async def request_proof(
        self,
        src_chain_id: int,
        dst_chain_id: int,
        block_number: int,
        position_in_block: int,
    ) -> JobId:
        ...

    @abstractmethod
    async def query_proof(self, job_id: JobId) -> ProofStatus:
        ...

    async def close(self) -> None:
        return None


class ProofServiceClient(ProofService):
    """JSON-RPC client for a hosted attestation service."""

    def __init__(
        self,
        config: ProverConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._url = config.url
        headers = {"Content-Type": "application/json"}
        if config.api_key:
            headers["Authorization"] = f"Bearer {config.api_key}"
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(config.timeout_s, connect=5.0),
            headers=headers,
            transport=transport,
        )
        self._ids = itertools.count(1)
        self._log = logger.bind(prover_url=self._url)

    async def request_proof(
        self,
        src_chain_id: int,
        dst_chain_id: int,
        block_number: int,
        position_in_block: int,
    ) -> JobId:
        result = await self._call(
            "receipt_requestProof",
            [src_chain_id, dst_chain_id, block_number, position_in_block],
        )
        if result is None or isinstance(result, (dict, list)):
            raise ProofServiceError(f"Unexpected job id in proof request response: {result!r}")
        self._log.info(
            "proof_requested",
            src_chain=src_chain_id,
            dst_chain=dst_chain_id,
            block=block_number,
            position=position_in_block,
            job_id=result,
        )
        return result

    async def query_proof(self, job_id: JobId) -> ProofStatus:
        result = await self._call("receipt_queryProof", [job_id])
        if not isinstance(result, dict):
            raise ProofServiceError(f"Unexpected proof query response: {result!r}")
        return ProofStatus(status=str(result.get("status", "unknown")), proof=result.get("proof"))

    async def close(self) -> None:
        await self._client.aclose()

    async def _call(self, method: str, params: list[Any]) -> Any:
        body = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        try:
            resp = await self._client.post(self._url, json=body)
        except httpx.HTTPError as exc:
            raise ProofServiceError(f"{method} transport error: {exc}") from exc

        if resp.status_code != 200:
            raise ProofServiceError(f"{method} failed with HTTP {resp.status_code}")

        try:
            payload = resp.json()
        except ValueError as exc:
            raise ProofServiceError(f"{method} returned non-JSON body") from exc

        if not isinstance(payload, dict):
            raise ProofServiceError(f"{method} returned unexpected body: {payload!r}")
        if payload.get("error"):
            error = payload["error"]
            message = error.get("message", error) if isinstance(error, dict) else error
            raise ProofServiceError(f"{method} error: {message}")
        return payload.get("result")
