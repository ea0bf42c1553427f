"""
RoadWatch - Storage Module
Object storage for report photos.
"""

from roadwatch.storage.object_storage import (
    ObjectStorage,
    SupabaseObjectStorage,
    LocalObjectStorage,
    build_object_key,
    create_storage,
)

__all__ = [
    "ObjectStorage",
    "SupabaseObjectStorage",
    "LocalObjectStorage",
    "build_object_key",
    "create_storage",
]
