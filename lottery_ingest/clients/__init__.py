"""
Client package initialization.
Exports the source clients.
"""
from lottery_ingest.clients.base import BaseAPIClient, SourceResponseError
from lottery_ingest.clients.minhngoc import MinhNgocClient
from lottery_ingest.clients.proxy import ProxyRotator
from lottery_ingest.clients.xoso188 import Xoso188Client

__all__ = [
    "BaseAPIClient",
    "SourceResponseError",
    "MinhNgocClient",
    "Xoso188Client",
    "ProxyRotator",
]
