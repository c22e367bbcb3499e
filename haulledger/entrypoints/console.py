"""Haul ledger console entrypoint.

Commands:
  status   - show the round and who has yet to report
  report   - report a haul for an outstanding participant
  sail     - start a new round once everyone has reported
  charter  - show cumulative loot per participant
"""

import argparse
import asyncio
import shutil
import sys

import bittensor as bt

from haulledger.base.config import LedgerConfig, add_args, load_config, overrides_from_args
from haulledger.client.leaderboard import LeaderboardProjection
from haulledger.client.screen import ChartState, ReportingScreen, ScreenView
from haulledger.ledger.gateway.http_client import JSONRPCLedgerGateway
from haulledger.ledger.signer import CallSigner


def _print_view(view: ScreenView) -> None:
    if view.closed:
        print(view.notice)
        return

    print(f"Days at sea: {view.round}")
    if view.outstanding:
        print("Yet to report:")
        for p in view.outstanding:
            marker = "*" if view.selected and p.address == view.selected.address else " "
            print(f" {marker} {p.label}")
    elif view.chart == ChartState.READY:
        print(f"Round chart: {view.chart_uri}")
    elif view.chart == ChartState.LOADING:
        print("Loading on-chain chart...")
    elif view.chart == ChartState.LINK:
        print(f"All have reported. Call the charter: {view.charter_url}")

    if view.error:
        print(f"error: {view.error}")
    if view.success:
        print(view.success)


def _build_signer(config: LedgerConfig) -> CallSigner | None:
    if not config.has_credential:
        return None
    return CallSigner.from_credential(config.credential, contract=config.contract_address)


async def _run(args: argparse.Namespace, config: LedgerConfig) -> int:
    gateway = JSONRPCLedgerGateway(
        config.rpc_url,
        contract_address=config.contract_address,
        timeout=config.request_timeout,
    )
    try:
        if args.command == "charter":
            view = await LeaderboardProjection(gateway, charter_open=config.charter_open).load()
            if view.error or view.notice:
                print(view.error or view.notice)
                return 1 if view.error else 0
            for bar in view.bars:
                print(f"{bar.name:<20} {'#' * max(1, round(bar.height * 40))} {bar.label}")
            return 0

        screen = ReportingScreen(config, gateway, signer=_build_signer(config))
        try:
            view = await screen.load()
            if args.command == "report" and not view.closed and not view.error:
                if args.participant:
                    try:
                        screen.select(args.participant)
                    except ValueError as e:
                        print(f"error: {e}")
                        return 1
                await screen.report(args.amount)
                view = screen.view()
            elif args.command == "sail" and not view.closed and not view.error:
                await screen.set_sail()
                view = screen.view()
            _print_view(view)
            if view.chart == ChartState.READY and args.chart_out:
                shutil.copyfile(screen.chart_handle.path, args.chart_out)
                print(f"Round chart saved to {args.chart_out}")
            return 1 if view.error else 0
        finally:
            screen.teardown()
    finally:
        await gateway.close()


def main() -> None:
    parser = argparse.ArgumentParser(description="Haul Ledger console")
    bt.logging.add_args(parser)
    add_args(parser)
    sub = parser.add_subparsers(dest="command", required=True)
    parser.add_argument("--chart_out", type=str, default=None, help="Save the round chart PNG here.")
    sub.add_parser("status", help="Show the current round")
    report = sub.add_parser("report", help="Report a haul")
    report.add_argument("amount", type=str, help="Loot value in PO8")
    report.add_argument("--participant", type=str, default=None, help="Participant address")
    sub.add_parser("sail", help="Start a new round")
    sub.add_parser("charter", help="Show loot totals")

    args = parser.parse_args()
    if getattr(args, "logging.debug", False):
        bt.logging.set_debug(True)
    if getattr(args, "logging.trace", False):
        bt.logging.set_trace(True)

    config = load_config(overrides=overrides_from_args(args))
    sys.exit(asyncio.run(_run(args, config)))


if __name__ == "__main__":
    main()
