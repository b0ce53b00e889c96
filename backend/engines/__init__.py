from engines.points import PointsLedger, PointReason, POINT_AWARDS
from engines.progress import ProgressTracker, completion_percent
from engines.ordering import OrderingEngine, diff_order
from engines.leaderboard import LeaderboardAggregator, LeaderboardEntry

__all__ = [
    "PointsLedger",
    "PointReason",
    "POINT_AWARDS",
    "ProgressTracker",
    "completion_percent",
    "OrderingEngine",
    "diff_order",
    "LeaderboardAggregator",
    "LeaderboardEntry",
]
