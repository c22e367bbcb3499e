"""Development ledger node entrypoint.

Serves an in-memory haul ledger over JSON-RPC so the console can be used
without a real chain. State lives only as long as the process.

Roster file format (JSON):
  [{"address": "5F...", "name": "Blackbeard"}, ...]
"""

import argparse
import asyncio
import json
import os
import signal
import sys

import bittensor as bt
from dotenv import load_dotenv

from haulledger.ledger.gateway.http_server import LedgerRPCServer
from haulledger.ledger.gateway.memory import InMemoryLedger
from haulledger.ledger.models import Participant
from haulledger.ledger.signer import load_keypair


def _load_roster(path: str) -> list[Participant]:
    with open(path) as f:
        data = json.load(f)
    return [Participant(**entry) for entry in data]


def main() -> None:
    # Load .env if not in test mode
    if os.environ.get("HAULLEDGER_TEST_MODE") != "true":
        load_dotenv()

    parser = argparse.ArgumentParser(description="Haul Ledger development node")
    bt.logging.add_args(parser)
    parser.add_argument("--roster", type=str, required=True, help="Path to roster JSON")
    parser.add_argument("--host", type=str, default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8545)
    parser.add_argument("--contract_address", type=str, default=None)
    parser.add_argument("--operator", action="append", default=[], help="Operator ss58 address (repeatable)")
    parser.add_argument("--block_time", type=float, default=2.0, help="Seconds between blocks")
    parser.add_argument("--finality_timeout", type=float, default=60.0)

    args = parser.parse_args()
    if getattr(args, "logging.debug", False):
        bt.logging.set_debug(True)

    contract_address = args.contract_address or os.environ.get("HAULLEDGER_LEDGER__CONTRACT_ADDRESS", "")
    operators = set(args.operator)
    credential = os.environ.get("HAULLEDGER_LEDGER__CREDENTIAL", "")
    if not operators and credential:
        operators.add(load_keypair(credential).ss58_address)

    try:
        roster = _load_roster(args.roster)
    except (OSError, ValueError) as e:
        bt.logging.error(f"cannot load roster {args.roster}: {e}")
        sys.exit(1)

    ledger = InMemoryLedger(
        roster=roster,
        operators=operators,
        contract_address=contract_address,
        block_time=args.block_time,
        finality_timeout=args.finality_timeout,
    )
    server = LedgerRPCServer(ledger, host=args.host, port=args.port)

    bt.logging.info({
        "ledger_node_config": {
            "participants": len(roster),
            "operators": sorted(operators),
            "contract_address": contract_address,
            "block_time": args.block_time,
            "port": args.port,
        }
    })

    loop = asyncio.new_event_loop()
    stop = asyncio.Event()

    def _signal_handler(sig, frame):
        bt.logging.info({"ledger_node": "shutdown_signal_received"})
        loop.call_soon_threadsafe(stop.set)

    signal.signal(signal.SIGINT, _signal_handler)
    signal.signal(signal.SIGTERM, _signal_handler)

    async def _serve() -> None:
        await server.start()
        try:
            await stop.wait()
        finally:
            await server.stop()

    try:
        loop.run_until_complete(_serve())
    finally:
        loop.close()
        bt.logging.info({"ledger_node": "stopped"})


if __name__ == "__main__":
    main()
