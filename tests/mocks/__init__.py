"""
Solver Test Mocks
=================
Reusable mock classes for isolated testing.
"""

from tests.mocks.mock_rpc import MockRpcClient, MockSyncRpcClient
from tests.mocks.mock_router import MockJupiterRouter, NoRouteRouter, unsigned_swap_tx

__all__ = [
    "MockRpcClient",
    "MockSyncRpcClient",
    "MockJupiterRouter",
    "NoRouteRouter",
    "unsigned_swap_tx",
]
