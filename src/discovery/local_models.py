"""On-device image models backed by torchvision's pretrained MobileNet family.

``TorchImageClassifier`` wraps an ImageNet classifier and reports its
top-k labels; ``TorchObjectDetector`` wraps a COCO detector and reports
every box label with its score. Both decode raw image bytes with Pillow
and run inference synchronously, so callers run them in a worker thread.
Installed through the ``vision`` extra.
"""

from __future__ import annotations

import io
from collections.abc import Callable, Sequence

import torch
from PIL import Image
from torchvision.models import MobileNet_V3_Large_Weights, mobilenet_v3_large
from torchvision.models.detection import (
    SSDLite320_MobileNet_V3_Large_Weights,
    ssdlite320_mobilenet_v3_large,
)

from src.discovery.vision import VisionModels
from src.shared.logging import get_logger
from src.shared.models import Classification, Detection

logger = get_logger(__name__)


def decode_image(image: bytes) -> Image.Image:
    """Decode *image* bytes into an RGB picture; raises on unreadable data."""
    with Image.open(io.BytesIO(image)) as picture:
        return picture.convert("RGB")


class TorchImageClassifier:
    def __init__(
        self,
        model: torch.nn.Module,
        preprocess: Callable[[Image.Image], torch.Tensor],
        categories: Sequence[str],
    ) -> None:
        self._model = model.eval()
        self._preprocess = preprocess
        self._categories = list(categories)

    @classmethod
    def pretrained(cls) -> TorchImageClassifier:
        weights = MobileNet_V3_Large_Weights.DEFAULT
        return cls(mobilenet_v3_large(weights=weights), weights.transforms(), weights.meta["categories"])

    def top_k(self, image: bytes, k: int) -> list[Classification]:
        batch = self._preprocess(decode_image(image)).unsqueeze(0)
        with torch.inference_mode():
            probabilities = self._model(batch).softmax(dim=1)[0]
        scores, indices = probabilities.topk(min(k, probabilities.numel()))
        return [
            Classification(label=self._categories[index], confidence=score)
            for score, index in zip(scores.tolist(), indices.tolist())
        ]


class TorchObjectDetector:
    def __init__(
        self,
        model: torch.nn.Module,
        preprocess: Callable[[Image.Image], torch.Tensor],
        categories: Sequence[str],
    ) -> None:
        self._model = model.eval()
        self._preprocess = preprocess
        self._categories = list(categories)

    @classmethod
    def pretrained(cls) -> TorchObjectDetector:
        weights = SSDLite320_MobileNet_V3_Large_Weights.DEFAULT
        return cls(ssdlite320_mobilenet_v3_large(weights=weights), weights.transforms(), weights.meta["categories"])

    def detect(self, image: bytes) -> list[Detection]:
        tensor = self._preprocess(decode_image(image))
        with torch.inference_mode():
            output = self._model([tensor])[0]
        return [
            Detection(label=self._categories[label], score=score)
            for label, score in zip(output["labels"].tolist(), output["scores"].tolist())
        ]


def load_vision_models() -> VisionModels:
    """Build both pretrained models; downloads weights on first use."""
    models = VisionModels(
        classifier=TorchImageClassifier.pretrained(),
        detector=TorchObjectDetector.pretrained(),
    )
    logger.info("Loaded on-device classifier and object detector")
    return models
