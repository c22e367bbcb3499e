"""Leaderboard projection of cumulative loot totals.

One read, no retries, no mutations. Bars are heights relative to the largest
total; a zero maximum puts every bar at the minimum height.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

import bittensor as bt

from haulledger.ledger.gateway.interface import LedgerGateway
from haulledger.ledger.models import LootRecord
from haulledger.ledger.units import format_amount, from_base_units

MIN_BAR_HEIGHT = 0.04
FETCH_FAILURE = "Failed to fetch loot totals."
EMPTY_NOTICE = "No loot to display yet!"
CLOSED_NOTICE = "The Charter is Closed!"


@dataclass(frozen=True)
class LeaderboardBar:
    name: str
    participant: str
    loot: int
    height: float

    @property
    def units(self) -> Decimal:
        return from_base_units(self.loot)

    @property
    def label(self) -> str:
        return f"{format_amount(self.loot)} PO8"


@dataclass
class LeaderboardView:
    bars: list[LeaderboardBar] = field(default_factory=list)
    error: str | None = None
    notice: str | None = None
    closed: bool = False


def project(records: list[LootRecord], min_height: float = MIN_BAR_HEIGHT) -> list[LeaderboardBar]:
    """Scale each total against the maximum. Ties are left as-is."""
    max_loot = max((r.loot for r in records), default=0)
    bars = []
    for r in records:
        height = r.loot / max_loot if max_loot else 0.0
        bars.append(LeaderboardBar(
            name=r.name,
            participant=r.participant,
            loot=r.loot,
            height=max(height, min_height),
        ))
    return bars


class LeaderboardProjection:
    """Loads loot totals once and projects them onto bars."""

    def __init__(self, gateway: LedgerGateway, charter_open: bool = True):
        self.gateway = gateway
        self.charter_open = charter_open

    async def load(self) -> LeaderboardView:
        if not self.charter_open:
            return LeaderboardView(closed=True, notice=CLOSED_NOTICE)

        try:
            records = await self.gateway.get_loot_totals()
        except Exception as e:
            bt.logging.warning({"leaderboard": {"status": "failed", "error": str(e)}})
            return LeaderboardView(error=FETCH_FAILURE)

        if not records:
            return LeaderboardView(notice=EMPTY_NOTICE)

        bt.logging.debug({"leaderboard": {"participants": len(records)}})
        return LeaderboardView(bars=project(records))


__all__ = [
    "CLOSED_NOTICE",
    "EMPTY_NOTICE",
    "FETCH_FAILURE",
    "MIN_BAR_HEIGHT",
    "LeaderboardBar",
    "LeaderboardProjection",
    "LeaderboardView",
    "project",
]
