"""
Decode raw YOLO output tensors into candidate detections.

Supported layouts (one fixed convention per model type, no shape guessing):

- yolov8  (channel-major):   (1, 4 + C, N) rows = [cx, cy, w, h, score_0 .. score_{C-1}]
- yolov10 (end-to-end):      (1, N, 6)     cols = [x1, y1, x2, y2, score, class_id]

Coordinates are model-input pixels (i.e. letterboxed space).
"""

from __future__ import annotations

from enum import Enum
from typing import List, Optional

import numpy as np

from .errors import UnsupportedFormat
from .types import CandidateDetection


class YoloType(str, Enum):
    YOLOV8 = "yolov8"
    YOLOV10 = "yolov10"

    @classmethod
    def from_name(cls, name: str) -> "YoloType":
        key = str(name).strip().lower()
        for member in cls:
            if member.value == key:
                return member
        supported = ", ".join(m.value for m in cls)
        raise ValueError(f"Unsupported model type: {name!r}. Supported: {supported}")


def _check_threshold(conf_threshold: float) -> float:
    conf = float(conf_threshold)
    if not 0.0 <= conf <= 1.0:
        raise ValueError(f"conf_threshold must be within [0, 1], got {conf_threshold}")
    return conf


def _as_single_batch(output: np.ndarray, expected: str) -> np.ndarray:
    p = np.asarray(output)
    if p.ndim != 3:
        raise UnsupportedFormat(f"Expected output shape {expected}, got {p.shape}", stage="decode")
    if p.shape[0] != 1:
        raise UnsupportedFormat(
            f"Batch > 1 is not supported (got shape {p.shape}). Pass one image at a time.", stage="decode"
        )
    return p[0]


def _to_candidates(
    cx: np.ndarray,
    cy: np.ndarray,
    w: np.ndarray,
    h: np.ndarray,
    scores: np.ndarray,
    class_ids: np.ndarray,
    conf_threshold: float,
) -> List[CandidateDetection]:
    geometry = np.stack([cx, cy, w, h], axis=1).astype(np.float64)
    scores = scores.astype(np.float64)

    finite = np.isfinite(geometry).all(axis=1) & np.isfinite(scores)
    keep = finite & (scores >= conf_threshold)
    idx = np.nonzero(keep)[0]

    # Scores outside [0, 1] are clipped so nothing downstream can emit them.
    clipped = np.clip(scores[idx], 0.0, 1.0)
    return [
        CandidateDetection(
            class_id=int(class_ids[i]),
            score=float(s),
            cx=float(geometry[i, 0]),
            cy=float(geometry[i, 1]),
            w=float(geometry[i, 2]),
            h=float(geometry[i, 3]),
        )
        for i, s in zip(idx, clipped)
    ]


class Yolov8Decoder:
    """
    Anchor-free YOLOv8/v9/v11 export: (1, 4 + C, N), class scores without objectness.
    """

    model_type = YoloType.YOLOV8

    def __init__(self, conf_threshold: float = 0.25, num_classes: Optional[int] = None):
        self.conf_threshold = _check_threshold(conf_threshold)
        if num_classes is not None and int(num_classes) < 1:
            raise ValueError("num_classes must be >= 1")
        self.num_classes = None if num_classes is None else int(num_classes)

    def decode(self, output: np.ndarray) -> List[CandidateDetection]:
        p = _as_single_batch(output, "(1, 4 + C, N)")
        channels = p.shape[0]
        if channels < 5:
            raise UnsupportedFormat(
                f"Expected at least 5 channels (4 box + >=1 class), got shape {np.shape(output)}", stage="decode"
            )
        if self.num_classes is not None and channels != 4 + self.num_classes:
            raise UnsupportedFormat(
                f"Output has {channels - 4} classes but the model is configured for {self.num_classes} "
                f"(shape {np.shape(output)})",
                stage="decode",
            )
        if p.shape[1] == 0:
            return []

        class_scores = p[4:, :]  # (C, N)
        class_ids = np.argmax(class_scores, axis=0)
        scores = class_scores[class_ids, np.arange(class_scores.shape[1])]
        return _to_candidates(p[0], p[1], p[2], p[3], scores, class_ids, self.conf_threshold)

    __call__ = decode


class Yolov10Decoder:
    """
    NMS-free YOLOv10 export: (1, N, 6) rows of [x1, y1, x2, y2, score, class_id].
    """

    model_type = YoloType.YOLOV10

    def __init__(self, conf_threshold: float = 0.25, num_classes: Optional[int] = None):
        if num_classes is not None and int(num_classes) < 1:
            raise ValueError("num_classes must be >= 1")
        self.conf_threshold = _check_threshold(conf_threshold)
        self.num_classes = None if num_classes is None else int(num_classes)

    def decode(self, output: np.ndarray) -> List[CandidateDetection]:
        p = _as_single_batch(output, "(1, N, 6)")
        if p.shape[1] != 6:
            raise UnsupportedFormat(f"Expected output shape (1, N, 6), got {np.shape(output)}", stage="decode")
        if p.shape[0] == 0:
            return []

        x1, y1, x2, y2 = p[:, 0], p[:, 1], p[:, 2], p[:, 3]
        raw_ids = p[:, 5]
        # Non-finite class ids are dropped together with their row.
        safe_ids = np.where(np.isfinite(raw_ids), raw_ids, -1).astype(np.int64)
        scores = np.where(safe_ids >= 0, p[:, 4], np.nan)
        if self.num_classes is not None:
            scores = np.where(safe_ids < self.num_classes, scores, np.nan)

        cx = (x1 + x2) / 2.0
        cy = (y1 + y2) / 2.0
        return _to_candidates(cx, cy, x2 - x1, y2 - y1, scores, safe_ids, self.conf_threshold)

    __call__ = decode


def create_decoder(model_type: str = "yolov8", *, conf_threshold: float = 0.25, num_classes: Optional[int] = None):
    kind = YoloType.from_name(model_type)
    if kind is YoloType.YOLOV10:
        return Yolov10Decoder(conf_threshold=conf_threshold, num_classes=num_classes)
    return Yolov8Decoder(conf_threshold=conf_threshold, num_classes=num_classes)
