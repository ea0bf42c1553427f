"""
Road defect classifier for report photos
Soft gate: warns about photos that do not look like road damage
"""

import logging
import os
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, List, Dict, Any

import cv2
import numpy as np

from roadwatch.core.config import settings
from roadwatch.core.constants import CLASSIFIER_INPUT_SHAPE
from roadwatch.core.errors import ClassifierError

logger = logging.getLogger(__name__)

REJECT_WARNING = (
    "The uploaded image does not appear to contain a pothole. "
    "Please upload a clear image of the road damage."
)


class Verdict(str, Enum):
    """Classifier outcome. UNKNOWN means no usable prediction."""
    ACCEPT = "accept"
    REJECT = "reject"
    UNKNOWN = "unknown"


@dataclass
class ClassificationResult:
    """Result of classifying a report photo."""
    verdict: Verdict
    confidence: Optional[float] = None

    warnings: List[str] = field(default_factory=list)
    processing_time_ms: float = 0.0
    model_version: str = "1.0"

    @property
    def should_warn(self) -> bool:
        """Only a confirmed reject is shown to the user."""
        return self.verdict == Verdict.REJECT

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "verdict": self.verdict.value,
            "confidence": self.confidence,
            "warnings": self.warnings,
            "model_version": self.model_version,
        }


class DefectClassifier:
    """
    Pretrained image model answering "is this road surface damage?".

    The model is a Keras binary classifier with a fixed
    224x224x3 input, loaded lazily on first use.
    """

    def __init__(
        self,
        model_path: Optional[str] = None,
        threshold: Optional[float] = None,
        model: Optional[Any] = None
    ):
        """
        Initialize classifier.

        Args:
            model_path: Path to a saved Keras model
            threshold: Minimum score for ACCEPT
            model: Already loaded model exposing predict()
        """
        self.model_path = model_path if model_path is not None else settings.classifier_model_path
        self.threshold = threshold if threshold is not None else settings.classifier_threshold

        self._model = model
        self._load_attempted = model is not None

    @property
    def is_ready(self) -> bool:
        """Check if a model is loaded."""
        self._ensure_model()
        return self._model is not None

    def _ensure_model(self) -> None:
        if self._load_attempted:
            return
        self._load_attempted = True

        if not self.model_path or not os.path.exists(self.model_path):
            logger.warning("Defect model not configured. Verdicts will be unknown.")
            return

        try:
            import tensorflow as tf
            self._model = tf.keras.models.load_model(self.model_path)
            logger.info(f"Loaded defect model from {self.model_path}")
        except Exception as e:
            logger.warning(f"Could not load defect model: {e}")

    def preprocess(self, image) -> Any:
        """
        Resize a decoded image to the model input tensor.

        Args:
            image: Pixel array (grayscale, BGR or BGRA)

        Returns:
            float32 batch of shape (1, 224, 224, 3) scaled to [0, 1]
        """
        if image is None or not hasattr(image, "shape"):
            raise ClassifierError("No decoded image")

        if image.ndim == 2:
            rgb = cv2.cvtColor(image, cv2.COLOR_GRAY2RGB)
        elif image.shape[2] == 4:
            rgb = cv2.cvtColor(image, cv2.COLOR_BGRA2RGB)
        elif image.shape[2] == 3:
            rgb = cv2.cvtColor(image, cv2.COLOR_BGR2RGB)
        else:
            raise ClassifierError(f"Unsupported channel count: {image.shape[2]}")

        height, width, channels = CLASSIFIER_INPUT_SHAPE
        resized = cv2.resize(rgb, (width, height), interpolation=cv2.INTER_LINEAR)

        # 16-bit images keep their range through resize
        scale = 65535.0 if resized.dtype == np.uint16 else 255.0
        batch = np.expand_dims(resized.astype(np.float32) / scale, axis=0)

        if batch.shape != (1, height, width, channels):
            raise ClassifierError(f"Unexpected input shape {batch.shape}")

        return batch

    def classify(self, image) -> ClassificationResult:
        """
        Classify a decoded image.

        Never raises: any failure yields an UNKNOWN verdict.

        Args:
            image: Pixel array from media ingestion

        Returns:
            ClassificationResult
        """
        start_time = time.time()
        result = ClassificationResult(verdict=Verdict.UNKNOWN)

        try:
            self._ensure_model()
            if self._model is None:
                raise ClassifierError("Defect model unavailable")

            batch = self.preprocess(image)
            prediction = self._model.predict(batch, verbose=0)
            score = float(np.asarray(prediction).reshape(-1)[0])

            result.confidence = score
            result.verdict = Verdict.ACCEPT if score >= self.threshold else Verdict.REJECT
            if result.verdict == Verdict.REJECT:
                result.warnings.append(REJECT_WARNING)

        except ClassifierError as e:
            result.warnings.append(e.message)
        except Exception as e:
            logger.error(f"Defect classification failed: {e}")
            result.warnings.append(f"Image check failed: {e}")

        result.processing_time_ms = (time.time() - start_time) * 1000
        return result
