from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple


@dataclass(frozen=True)
class CandidateDetection:
    """
    Raw detection proposal in model-input pixel space (center/size form).
    """

    class_id: int
    score: float
    cx: float
    cy: float
    w: float
    h: float

    def as_xyxy(self) -> Tuple[float, float, float, float]:
        half_w = self.w / 2.0
        half_h = self.h / 2.0
        return self.cx - half_w, self.cy - half_h, self.cx + half_w, self.cy + half_h


@dataclass(frozen=True)
class Detection:
    """
    Final detection in original image pixel space.

    `id` stays None until the report builder numbers the detections.
    """

    category_id: int
    score: float
    x1: float
    y1: float
    x2: float
    y2: float
    id: Optional[int] = None

    @property
    def width(self) -> float:
        return self.x2 - self.x1

    @property
    def height(self) -> float:
        return self.y2 - self.y1

    def as_xyxy(self) -> Tuple[float, float, float, float]:
        return self.x1, self.y1, self.x2, self.y2

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "category_id": int(self.category_id),
            "score": float(self.score),
            "x1": float(self.x1),
            "y1": float(self.y1),
            "x2": float(self.x2),
            "y2": float(self.y2),
            "width": float(self.width),
            "height": float(self.height),
        }


@dataclass(frozen=True)
class ImageMeta:
    file_name: str
    width: int
    height: int

    def to_dict(self) -> Dict[str, Any]:
        return {"file_name": self.file_name, "width": int(self.width), "height": int(self.height)}


@dataclass(frozen=True)
class ImageResult:
    """
    Output of one pipeline run: the image metadata and its detections (unnumbered).
    """

    meta: ImageMeta
    detections: List[Detection]


@dataclass(frozen=True)
class DetectionReport:
    """
    Aggregate output: numbered detections plus one ImageMeta per processed image.

    `image_ids` pairs each detection with the 1-based index of its image in `images`.
    It is either empty (detections are serialized without `image_id`) or exactly as
    long as `detections`.
    """

    detections: List[Detection] = field(default_factory=list)
    images: List[ImageMeta] = field(default_factory=list)
    image_ids: List[int] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.image_ids and len(self.image_ids) != len(self.detections):
            raise ValueError(
                f"image_ids length {len(self.image_ids)} does not match detections length {len(self.detections)}"
            )

    def to_dict(self) -> Dict[str, Any]:
        detections = []
        for idx, det in enumerate(self.detections):
            payload = det.to_dict()
            if self.image_ids:
                payload["image_id"] = int(self.image_ids[idx])
            detections.append(payload)
        images = []
        for idx, meta in enumerate(self.images, start=1):
            payload = meta.to_dict()
            payload["id"] = idx
            images.append(payload)
        return {"detections": detections, "images": images}


@dataclass(frozen=True)
class ImageFailure:
    file_name: str
    stage: Optional[str]
    error: Exception


@dataclass(frozen=True)
class BatchResult:
    report: DetectionReport
    failures: List[ImageFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures
