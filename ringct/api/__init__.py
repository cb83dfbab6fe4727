"""
Node access.
"""

from ringct.api.rpc import RpcClient, KeyImageStatus

__all__ = [
    "RpcClient",
    "KeyImageStatus",
]
