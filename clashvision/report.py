"""
Report building and serialization.

The JSON report layout is:

    {
      "detections": [{"id", "category_id", "score", "x1", "y1", "x2", "y2",
                      "width", "height", "image_id"}, ...],
      "images": [{"file_name", "width", "height", "id"}, ...]
    }
"""

from __future__ import annotations

import json
import math
import os
import tempfile
import threading
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, Tuple, Union

from .errors import EncodingError
from .types import Detection, DetectionReport, ImageMeta

PathLike = Union[str, Path]


class ReportBuilder:
    """
    Collects per-image results and numbers them into a DetectionReport.

    `add()` may be called from several worker threads. Entries are ordered by
    their `order` key (then by arrival), so concurrent runs build the same report.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: List[Tuple[float, int, ImageMeta, List[Detection]]] = []
        self._seq = 0

    def add(self, meta: ImageMeta, detections: Iterable[Detection], order: Optional[int] = None) -> None:
        dets = list(detections)
        with self._lock:
            key = float(order) if order is not None else float(self._seq)
            self._entries.append((key, self._seq, meta, dets))
            self._seq += 1

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def build(self) -> DetectionReport:
        with self._lock:
            entries = sorted(self._entries, key=lambda e: (e[0], e[1]))

        detections: List[Detection] = []
        images: List[ImageMeta] = []
        image_ids: List[int] = []
        next_id = 1
        for image_idx, (_, _, meta, dets) in enumerate(entries, start=1):
            images.append(meta)
            for det in dets:
                detections.append(replace(det, id=next_id))
                image_ids.append(image_idx)
                next_id += 1

        return DetectionReport(detections=detections, images=images, image_ids=image_ids)


def build_report(results: Iterable[Tuple[ImageMeta, Sequence[Detection]]]) -> DetectionReport:
    builder = ReportBuilder()
    for meta, dets in results:
        builder.add(meta, dets)
    return builder.build()


def _validate(report: DetectionReport) -> None:
    for det in report.detections:
        values = (det.score, det.x1, det.y1, det.x2, det.y2)
        if not all(math.isfinite(float(v)) for v in values):
            raise EncodingError(f"Detection {det.id} has a non-finite value: {det}", stage="report")
        if not 0.0 <= float(det.score) <= 1.0:
            raise EncodingError(f"Detection {det.id} score out of [0, 1]: {det.score}", stage="report")


def report_to_json(report: DetectionReport, *, indent: Optional[int] = 2) -> str:
    _validate(report)
    try:
        return json.dumps(report.to_dict(), indent=indent, allow_nan=False)
    except (TypeError, ValueError) as exc:
        raise EncodingError(f"Could not serialize report: {exc}", stage="report") from exc


def _atomic_write_text(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
        os.replace(tmp, path)
    except BaseException:
        if os.path.exists(tmp):
            os.unlink(tmp)
        raise


def write_report(report: DetectionReport, path: PathLike) -> Path:
    """
    Serialize first, then write atomically: a failed report never leaves a file behind.
    """

    text = report_to_json(report)
    out = Path(path)
    _atomic_write_text(out, text + "\n")
    return out


def write_yolo_txt(
    detections: Sequence[Detection],
    image_size: Tuple[int, int],
    path: PathLike,
    *,
    include_confidence: bool = False,
    precision: int = 6,
) -> Path:
    """
    Export detections as YOLO label lines: `class cx cy w h [score]`, normalized to [0, 1].

    An image without detections produces an empty file.
    """

    width, height = image_size
    if width <= 0 or height <= 0:
        raise ValueError(f"image_size must be positive, got {image_size}")

    lines: List[str] = []
    for det in detections:
        values = [
            (det.x1 + det.x2) / 2.0 / width,
            (det.y1 + det.y2) / 2.0 / height,
            det.width / width,
            det.height / height,
        ]
        if include_confidence:
            values.append(det.score)
        lines.append(" ".join([str(int(det.category_id))] + [f"{v:.{precision}f}" for v in values]))

    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text("".join(line + "\n" for line in lines), encoding="utf-8")
    return out


@dataclass(frozen=True)
class DetectionStats:
    total_detections: int = 0
    classes_detected: Set[int] = field(default_factory=set)
    average_confidence: float = 0.0
    confidence_range: Tuple[float, float] = (0.0, 0.0)

    @classmethod
    def from_detections(cls, detections: Sequence[Detection]) -> "DetectionStats":
        if not detections:
            return cls()
        scores = [float(d.score) for d in detections]
        return cls(
            total_detections=len(detections),
            classes_detected={int(d.category_id) for d in detections},
            average_confidence=sum(scores) / len(scores),
            confidence_range=(min(scores), max(scores)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_detections": self.total_detections,
            "classes_detected": sorted(self.classes_detected),
            "average_confidence": self.average_confidence,
            "confidence_range": list(self.confidence_range),
        }
