"""
Labstock Protocols.

Defines interfaces for external system integration.
"""

from labstock.protocols.storage import (
    BatchFilter,
    ConsumableBatch,
    StorageBackend,
    WriteOffEntry,
)

__all__ = [
    "BatchFilter",
    "ConsumableBatch",
    "StorageBackend",
    "WriteOffEntry",
]
