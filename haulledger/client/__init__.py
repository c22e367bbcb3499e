"""Haul ledger client.

Keeps local round state in step with the ledger, drives mutating
transactions through to finality, and decodes the chart artifact the ledger
renders once a round is complete.
"""

from .decoder import ArtifactDecoder, DisplayHandle
from .leaderboard import LeaderboardBar, LeaderboardProjection, LeaderboardView
from .orchestrator import Feedback, TransactionOrchestrator
from .screen import ChartState, ReportingScreen, ScreenView
from .sync import RoundSynchronizer

__all__ = [
    "ArtifactDecoder",
    "ChartState",
    "DisplayHandle",
    "Feedback",
    "LeaderboardBar",
    "LeaderboardProjection",
    "LeaderboardView",
    "ReportingScreen",
    "RoundSynchronizer",
    "ScreenView",
    "TransactionOrchestrator",
]
