#!/usr/bin/env python3
"""
Unit Tests for Document Classifier

Tests feature extraction with a small stand-in network so no pretrained
weights are downloaded.
"""

import pytest
import torch
from unittest.mock import patch
from torchvision import transforms

from docverify.config import ClassifierConfig
from docverify.document_classifier import DocumentClassifier

from tests.utils import make_png

class TestDocumentClassifier:
    """Test cases for DocumentClassifier class."""

    @pytest.fixture
    def classifier(self):
        classifier = DocumentClassifier(ClassifierConfig(enabled=True, top_k=3, device="cpu"))
        torch.manual_seed(0)
        classifier.model = torch.nn.Sequential(
            torch.nn.Flatten(),
            torch.nn.Linear(3 * 16 * 16, 10),
        ).eval()
        classifier.preprocess = transforms.Compose([
            transforms.Resize((16, 16)),
            transforms.ToTensor(),
        ])
        return classifier

    def test_feature_vector_layout(self, classifier):
        features = classifier.extract_features(make_png(400, 200))

        assert len(features) == 6
        top = features[:3]
        assert top == sorted(top, reverse=True)
        assert all(0.0 <= value <= 1.0 for value in top)
        assert features[3:] == pytest.approx([0.4, 0.2, 2.0])

    def test_invalid_image(self, classifier):
        assert classifier.extract_features(b"not an image") == []

    def test_disabled_classifier(self):
        classifier = DocumentClassifier(ClassifierConfig(enabled=False, device="cpu"))

        assert classifier.extract_features(make_png()) == []
        assert classifier.is_loaded is False

    def test_weights_unavailable(self):
        classifier = DocumentClassifier(ClassifierConfig(device="cpu"))

        with patch("docverify.document_classifier.models.mobilenet_v2",
                   side_effect=RuntimeError("download failed")) as mock_model:
            assert classifier.extract_features(make_png()) == []
            assert classifier.extract_features(make_png()) == []

        # A failed load is not retried
        mock_model.assert_called_once()

    def test_size_features(self):
        assert DocumentClassifier._size_features(1200, 800) == pytest.approx([1.2, 0.8, 1.5])
        assert DocumentClassifier._size_features(100, 0) == pytest.approx([0.1, 0.0, 0.0])
