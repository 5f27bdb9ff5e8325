"""
Lottery Ingest package.
Scheduled capture of Vietnamese lottery results with source failover,
backfill and idempotent storage.
"""
from lottery_ingest.config import Settings, get_settings
from lottery_ingest.models import Region

__version__ = "1.0.0"
__all__ = ["get_settings", "Settings", "Region"]
