"""Remote transport connectors package"""
from .base import (
    AuthenticationError,
    CommandError,
    CommandNotAuthorizedError,
    Connection,
    ConnectionError,
    NO_EXIT_STATUS,
    PatchPilotError,
    Result,
    UnsupportedAssetError,
    connection_for,
)

__all__ = [
    'AuthenticationError',
    'CommandError',
    'CommandNotAuthorizedError',
    'Connection',
    'ConnectionError',
    'NO_EXIT_STATUS',
    'PatchPilotError',
    'Result',
    'UnsupportedAssetError',
    'connection_for',
]
