"""Clients for the external collaborators: portal API and file storage."""

from casesync.clients.portal import PortalAPI, PortalClient
from casesync.clients.storage import BoxStorageClient, StorageClient

__all__ = ["BoxStorageClient", "PortalAPI", "PortalClient", "StorageClient"]
