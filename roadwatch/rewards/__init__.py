"""
RoadWatch - Rewards Module
Points balances and redemption history.
"""

from roadwatch.rewards.points import PointsLedger, PointsSummary

__all__ = [
    "PointsLedger",
    "PointsSummary",
]
