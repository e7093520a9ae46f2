"""
Service layer: the controller that keeps render targets in sync with the store,
render target interfaces, and snapshot persistence.
"""

from .campaign_controller import CampaignController
from .render_target import InMemoryRenderTarget, RenderTarget
from .snapshot_service import SnapshotService
from .storage import LocalFileSystemStorage, StorageBackend

__all__ = [
    "CampaignController",
    "InMemoryRenderTarget",
    "RenderTarget",
    "SnapshotService",
    "LocalFileSystemStorage",
    "StorageBackend",
]
