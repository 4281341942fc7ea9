"""Object store adapters for raw customer documents."""

from .blob import FilesystemObjectStore, HttpObjectStore, ObjectStore, customer_object_id

__all__ = ["FilesystemObjectStore", "HttpObjectStore", "ObjectStore", "customer_object_id"]
