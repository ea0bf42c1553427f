"""
RoadWatch - ML Module
Defect classification for report photos.
"""

from roadwatch.ml.defect_classifier import (
    DefectClassifier,
    ClassificationResult,
    Verdict,
)

__all__ = [
    "DefectClassifier",
    "ClassificationResult",
    "Verdict",
]
