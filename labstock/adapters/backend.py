"""
Storage backend loader.

Settings:
    LABSTOCK = {
        "STORAGE_BACKEND": "labstock.adapters.django_orm.DjangoBackend",
    }

Usage:
    from labstock.adapters import get_storage_backend

    backend = get_storage_backend()
    backend.read_batches(BatchFilter(nomenclature_id="12"))
"""

from __future__ import annotations

import logging
import threading

from django.core.exceptions import ImproperlyConfigured
from django.utils.module_loading import import_string

from labstock.conf import labstock_settings
from labstock.protocols.storage import StorageBackend

logger = logging.getLogger(__name__)


# Cached backend instance
_lock = threading.Lock()
_storage_backend: StorageBackend | None = None


def get_storage_backend() -> StorageBackend:
    """
    Return the configured storage backend.

    Raises:
        ImproperlyConfigured: If STORAGE_BACKEND is empty, cannot be imported
            or does not implement StorageBackend
    """
    global _storage_backend

    if _storage_backend is None:
        with _lock:
            if _storage_backend is None:  # double-checked
                backend_path = labstock_settings.STORAGE_BACKEND

                if not backend_path:
                    raise ImproperlyConfigured(
                        "LABSTOCK['STORAGE_BACKEND'] must be configured. "
                        "Example: 'labstock.adapters.django_orm.DjangoBackend'"
                    )

                try:
                    backend_class = import_string(backend_path)
                except ImportError as e:
                    raise ImproperlyConfigured(
                        f"Failed to import storage backend '{backend_path}': {e}"
                    ) from e

                backend = backend_class()
                if not isinstance(backend, StorageBackend):
                    raise ImproperlyConfigured(
                        f"'{backend_path}' does not implement StorageBackend"
                    )
                _storage_backend = backend
                logger.debug("Loaded storage backend: %s", backend_path)

    return _storage_backend


def reset_storage_backend() -> None:
    """Reset the cached backend. Useful for testing."""
    global _storage_backend
    _storage_backend = None
