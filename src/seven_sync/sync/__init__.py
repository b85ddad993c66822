from .statistics import SyncStats
from .report import StatisticsReporter, WarningsReport, generate_findings
from .sync_service import Synchronizer, run_synchronization

__all__ = [
    "StatisticsReporter",
    "SyncStats",
    "Synchronizer",
    "WarningsReport",
    "generate_findings",
    "run_synchronization",
]
