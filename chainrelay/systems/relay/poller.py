"""
ChainRelay — Proof Poller

Bounded polling of one proof job: wait initial_delay_s, query, then wait
poll_interval_s between further queries, for at most max_attempts queries.
The first response carrying a proof wins. Exhausting the budget raises
ProofTimeout. A service error on any query, or a job the service reports as
failed, raises ProofServiceError at once.

This is the only retry loop in the whole protocol.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import structlog

from chainrelay.systems.relay.errors import ProofServiceError, ProofTimeout

if TYPE_CHECKING:
    from chainrelay.clients.proof_service import JobId, ProofService

logger = structlog.get_logger()


class ProofPoller:
    def __init__(
        self,
        service: ProofService,
        initial_delay_s: float = 10.0,
        poll_interval_s: float = 5.0,
        max_attempts: int = 10,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._service = service
        self._initial_delay_s = initial_delay_s
        self._poll_interval_s = poll_interval_s
        self._max_attempts = max_attempts
        self._logger = logger.bind(system="relay.poller")

    async def wait_for_proof(self, job_id: JobId) -> bytes:
        for attempt in range(self._max_attempts):
            await asyncio.sleep(self._initial_delay_s if attempt == 0 else self._poll_interval_s)

            status = await self._service.query_proof(job_id)
            self._logger.debug(
                "proof_status",
                job_id=job_id,
                status=status.status,
                attempt=attempt + 1,
                max_attempts=self._max_attempts,
            )
            if status.ready:
                proof = status.proof_bytes()
                self._logger.info("proof_received", job_id=job_id, size=len(proof))
                return proof
            if status.failed:
                raise ProofServiceError(f"Proof job {job_id} failed (status={status.status})")

        raise ProofTimeout(
            f"Proof job {job_id} not ready after {self._max_attempts} attempts"
        )
