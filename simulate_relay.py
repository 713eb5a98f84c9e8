"""
ChainRelay — Counter round-trip simulation.

Runs the two configured chains as in-process ledgers, deploys a bridge
endpoint with the counter handlers on each, starts a relayer between them,
and drives one round of the counter ping-pong:

    step 1 on chain A → step 2 on chain B → step 3 back on chain A

The run succeeds once chain A holds 3. Proofs come from the local Ed25519
attestation service, so no network access is needed.

Usage:
    python simulate_relay.py [--config config/default.yaml] [--timeout 30]

CHAINRELAY_CHAIN_A / CHAINRELAY_CHAIN_B select the chain pair, as for the
relayer itself.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
import time
from pathlib import Path

from dotenv import load_dotenv

# load_dotenv MUST run before config is loaded
load_dotenv()

DEFAULT_CONFIG = Path(__file__).parent / "config" / "default.yaml"


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Simulate a cross-chain counter round trip between two in-process chains."
    )
    parser.add_argument("--config", default=str(DEFAULT_CONFIG), help="YAML config path.")
    parser.add_argument(
        "--timeout",
        type=float,
        default=30.0,
        help="Seconds to wait for the counter to reach 3.",
    )
    parser.add_argument(
        "--realtime",
        action="store_true",
        help="Keep the configured proof polling delays instead of shortening them.",
    )
    return parser.parse_args()


async def main(args: argparse.Namespace) -> int:
    from chainrelay.config import load_config
    from chainrelay.primitives.common import derive_address, short_hex
    from chainrelay.systems.attestation import LocalProofService
    from chainrelay.systems.bridge import BridgeEndpoint
    from chainrelay.systems.bridge.handlers import counter_handlers, update_number_step1
    from chainrelay.systems.ledger import Ledger
    from chainrelay.systems.relay import ActionAuditor, InMemoryEndpointClient, RelayOrchestrator
    from chainrelay.telemetry.logging import setup_logging

    config = load_config(args.config)
    setup_logging(config.logging, instance_id=config.instance_id)

    try:
        chain_a, chain_b = config.link()
    except ValueError as exc:
        print(f"[ERROR] {exc}", file=sys.stderr)
        return 1

    if not args.realtime:
        config.prover.initial_delay_s = 0.05
        config.prover.poll_interval_s = 0.05
        config.relayer.poll_interval_s = 0.05

    print(f"[*] Bridging {chain_a.name} ({chain_a.chain_id}) <-> {chain_b.name} ({chain_b.chain_id})")

    # ── Chains & endpoints ─────────────────────────────────────────────────────

    ledger_a = Ledger(chain_a.chain_id, name=chain_a.name)
    ledger_b = Ledger(chain_b.chain_id, name=chain_b.name)
    prover = LocalProofService([ledger_a, ledger_b], polls_until_ready=1)

    address_a = chain_a.contract_address or derive_address(f"bridge:{chain_a.chain_id}")
    address_b = chain_b.contract_address or derive_address(f"bridge:{chain_b.chain_id}")
    endpoint_a = BridgeEndpoint(
        ledger_a, address_a, counter_handlers(), prover.verifier_for(chain_a.chain_id),
        peer=address_b, peer_chain_id=chain_b.chain_id,
    )
    endpoint_b = BridgeEndpoint(
        ledger_b, address_b, counter_handlers(), prover.verifier_for(chain_b.chain_id),
        peer=address_a, peer_chain_id=chain_a.chain_id,
    )
    client_a = InMemoryEndpointClient(endpoint_a)
    client_b = InMemoryEndpointClient(endpoint_b)

    relayer = RelayOrchestrator(
        (client_a, client_b),
        prover,
        relayer_config=config.relayer,
        prover_config=config.prover,
        bus_config=config.bus,
        instance_id=config.instance_id,
    )
    await relayer.start()

    # ── Round trip ─────────────────────────────────────────────────────────────

    user = derive_address("user")
    receipt = await update_number_step1(endpoint_a, user, 1)
    first_action = receipt.value
    print(f"[*] Step 1 on {chain_a.name}: number=1, action {short_hex(first_action, 18)}")

    deadline = time.monotonic() + args.timeout
    try:
        while endpoint_a.state.get("number", 0) < 3:
            if time.monotonic() > deadline:
                print(f"[FAIL] Timed out after {args.timeout}s", file=sys.stderr)
                return 1
            await asyncio.sleep(0.05)
        await relayer.drain()
    finally:
        await relayer.stop()

    print(f"[+] {chain_b.name} number: {endpoint_b.state.get('number')}")
    print(f"[+] {chain_a.name} number: {endpoint_a.state.get('number')}")

    print("[*] Audit trail:")
    for entry in await ActionAuditor([client_a, client_b]).trail(first_action):
        print(
            f"    {entry.chain:<20} block {entry.block_number:<4} "
            f"{entry.event_type.value:<18} {short_hex(entry.action_id, 18)}"
        )

    stats = relayer.stats["outcomes"]
    print(f"[*] Relay outcomes: {stats}")
    print("[OK] Number has reached 3")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main(_parse_args())))
