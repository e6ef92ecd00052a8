"""
Labstock Adapters.

Implementations of the StorageBackend protocol.
"""

from labstock.adapters.backend import get_storage_backend, reset_storage_backend
from labstock.adapters.django_orm import DjangoBackend
from labstock.adapters.memory import InMemoryBackend

__all__ = [
    "DjangoBackend",
    "InMemoryBackend",
    "get_storage_backend",
    "reset_storage_backend",
]
