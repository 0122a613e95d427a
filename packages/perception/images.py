"""Image-analysis seam: the modeler only consumes projected openings.

Any object with an ``analyze(image) -> ImageAnalysisResult`` method can be
plugged in; :class:`SimulatedImageAnalyzer` is the stand-in used until a
real vision backend is wired up.
"""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

from packages.core.types import (
    DetectedOpening,
    ImageAnalysisResult,
    ImageInput,
    ImageRegion,
    OpeningKind,
    OpeningSize,
    PixelBox,
    Vec3,
)

logger = logging.getLogger(__name__)

# Placeholder until camera calibration is available.
PIXEL_TO_MM = 2.0
IMAGE_CONFIDENCE_SCALE = 0.8


@runtime_checkable
class ImageAnalyzer(Protocol):
    def analyze(self, image: ImageInput) -> ImageAnalysisResult: ...


class SimulatedImageAnalyzer:
    """Reports a single door in the upper middle of every frame."""

    def __init__(self, confidence: float = 0.7):
        self.confidence = confidence

    def analyze(self, image: ImageInput) -> ImageAnalysisResult:
        door = ImageRegion(
            kind=OpeningKind.DOOR.value,
            bounding_box=PixelBox(
                x=image.width * 0.5,
                y=image.height * 0.15,
                width=image.width * 0.1,
                height=image.height * 0.3,
            ),
            confidence=self.confidence,
        )
        return ImageAnalysisResult(image_id=image.id, openings=[door])


def _opening_kind(label: str) -> OpeningKind:
    try:
        return OpeningKind(label)
    except ValueError:
        return OpeningKind.OPENING


def project_openings(image: ImageInput, result: ImageAnalysisResult) -> list[DetectedOpening]:
    """Lift 2D opening boxes into 3D with the fixed pixel-to-mm scale.

    The box origin becomes the (x, z) position on the y = 0 plane; the box
    size is scaled by :data:`PIXEL_TO_MM`.
    """
    openings: list[DetectedOpening] = []
    for i, region in enumerate(result.openings):
        box = region.bounding_box
        openings.append(
            DetectedOpening(
                id=f"img-{image.id}-opening-{i}",
                kind=_opening_kind(region.kind),
                position=Vec3(x=box.x, y=0.0, z=box.y),
                dimensions=OpeningSize(width=box.width * PIXEL_TO_MM, height=box.height * PIXEL_TO_MM),
                normal=Vec3(x=0.0, y=1.0, z=0.0),
                confidence=min(1.0, max(0.0, region.confidence * IMAGE_CONFIDENCE_SCALE)),
            )
        )
    logger.info("Projected %d opening(s) from image %s", len(openings), image.id)
    return openings
