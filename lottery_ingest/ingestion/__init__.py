"""
Ingestion package: normalization, the write path and the read side.
"""
from lottery_ingest.ingestion.normalizer import (
    draws_to_issue_list,
    issues_to_draws,
    parse_detail,
    parse_turn_num,
)
from lottery_ingest.ingestion.reader import DrawReader
from lottery_ingest.ingestion.writer import DrawImporter, InvalidPayloadError

__all__ = [
    "issues_to_draws",
    "parse_detail",
    "parse_turn_num",
    "draws_to_issue_list",
    "DrawImporter",
    "DrawReader",
    "InvalidPayloadError",
]
