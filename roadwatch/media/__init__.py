"""
RoadWatch - Media Module
Image ingestion shared by file picker and camera capture.
"""

from roadwatch.media.capture import CaptureSource, CapturedImage, ingest

__all__ = [
    "CaptureSource",
    "CapturedImage",
    "ingest",
]
