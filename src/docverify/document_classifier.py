#!/usr/bin/env python3
"""
Document Classifier Module

Image feature extraction for uploaded documents using a pretrained
MobileNetV2. The features feed the AI verification prompt.
"""

import io
import logging
from typing import List, Optional

import numpy as np
import torch
from PIL import Image
from torchvision import models

from .config import ClassifierConfig

logger = logging.getLogger(__name__)

class DocumentClassifier:
    """
    Image classifier producing a short feature vector per document.

    Features are the top-k softmax probabilities (descending) followed by
    width/1000, height/1000 and the aspect ratio width/height.
    """

    def __init__(self, config: Optional[ClassifierConfig] = None):
        """
        Initialize the document classifier.

        Args:
            config: Classifier configuration; the model is loaded lazily
        """
        self.config = config or ClassifierConfig()
        self.device = self._setup_device(self.config.device)
        self.model = None
        self.preprocess = None
        self._load_failed = False

    def _setup_device(self, device: str) -> str:
        if device == "auto":
            return "cuda" if torch.cuda.is_available() else "cpu"
        return device

    def _load_model(self) -> bool:
        """Load MobileNetV2 with ImageNet weights on first use."""
        if self.model is not None:
            return True
        if self._load_failed or not self.config.enabled:
            return False

        try:
            weights = models.MobileNet_V2_Weights.IMAGENET1K_V1
            self.model = models.mobilenet_v2(weights=weights).to(self.device)
            self.model.eval()
            self.preprocess = weights.transforms()
            logger.info(f"MobileNetV2 loaded on {self.device}")
            return True
        except Exception as e:
            # Weights may be unavailable offline; callers get no features
            logger.warning(f"Could not load image classifier: {e}")
            self._load_failed = True
            return False

    @property
    def is_loaded(self) -> bool:
        return self.model is not None

    def extract_features(self, content: bytes) -> List[float]:
        """
        Extract the feature vector for an image. Returns [] on any failure.

        Args:
            content: Raw image bytes

        Returns:
            List[float]: Top-k probabilities followed by size features
        """
        if not self._load_model():
            return []

        try:
            with Image.open(io.BytesIO(content)) as image:
                image = image.convert("RGB")
                width, height = image.size
                batch = self.preprocess(image).unsqueeze(0).to(self.device)

            with torch.no_grad():
                logits = self.model(batch)
                probabilities = torch.nn.functional.softmax(logits[0], dim=0)

            top_k = min(self.config.top_k, probabilities.shape[0])
            top_values, _ = torch.topk(probabilities, top_k)
            features = [float(v) for v in top_values.cpu().numpy()]

            return features + self._size_features(width, height)

        except Exception as e:
            logger.error(f"Feature extraction failed: {e}")
            return []

    @staticmethod
    def _size_features(width: int, height: int) -> List[float]:
        dims = np.array([width, height], dtype=np.float64) / 1000.0
        aspect = float(width) / float(height) if height else 0.0
        return [float(dims[0]), float(dims[1]), aspect]
