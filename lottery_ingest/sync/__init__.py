"""
Sync engine: per-region polling and the daily backfill audit.
"""
from lottery_ingest.sync.backfill import BackfillAuditor, BackfillReport, audit_dates
from lottery_ingest.sync.poller import PollState, PollStatus, RegionPoller, local_clock

__all__ = [
    "RegionPoller",
    "PollState",
    "PollStatus",
    "local_clock",
    "BackfillAuditor",
    "BackfillReport",
    "audit_dates",
]
