"""Remote call layer and concurrency helpers shared by the sync engine."""

from .async_utils import run_limited, run_sync
from .client import GatewayClient

__all__ = ["GatewayClient", "run_limited", "run_sync"]
