from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Sequence, Tuple

import numpy as np

from .types import CandidateDetection


@dataclass(frozen=True)
class NMSConfig:
    iou_threshold: float = 0.45
    max_detections: int = 300
    # If True, boxes of different classes may suppress each other.
    class_agnostic: bool = False

    def __post_init__(self) -> None:
        if not 0.0 < float(self.iou_threshold) <= 1.0:
            raise ValueError(f"iou_threshold must be within (0, 1], got {self.iou_threshold}")
        if int(self.max_detections) < 1:
            raise ValueError("max_detections must be >= 1")


def _areas(boxes: np.ndarray) -> np.ndarray:
    # Inverted or degenerate boxes have zero area.
    w = np.maximum(0.0, boxes[:, 2] - boxes[:, 0])
    h = np.maximum(0.0, boxes[:, 3] - boxes[:, 1])
    return w * h


def iou_one_to_many(box: np.ndarray, boxes: np.ndarray) -> np.ndarray:
    """
    IoU of one xyxy box against (N, 4) xyxy boxes. Zero union gives IoU 0.
    """

    box = np.asarray(box, dtype=np.float64).reshape(4)
    boxes = np.asarray(boxes, dtype=np.float64).reshape(-1, 4)

    xx1 = np.maximum(box[0], boxes[:, 0])
    yy1 = np.maximum(box[1], boxes[:, 1])
    xx2 = np.minimum(box[2], boxes[:, 2])
    yy2 = np.minimum(box[3], boxes[:, 3])

    inter = np.maximum(0.0, xx2 - xx1) * np.maximum(0.0, yy2 - yy1)
    union = _areas(box[None, :])[0] + _areas(boxes) - inter
    out = np.zeros_like(inter)
    np.divide(inter, union, out=out, where=union > 0.0)
    return out


def iou(a: Sequence[float], b: Sequence[float]) -> float:
    return float(iou_one_to_many(np.asarray(a), np.asarray(b)[None, :])[0])


def iou_matrix(boxes_a: np.ndarray, boxes_b: np.ndarray) -> np.ndarray:
    """
    Pairwise IoU, shape (N, M), for (N, 4) and (M, 4) xyxy boxes.
    """

    a = np.asarray(boxes_a, dtype=np.float64).reshape(-1, 4)
    b = np.asarray(boxes_b, dtype=np.float64).reshape(-1, 4)

    xx1 = np.maximum(a[:, None, 0], b[None, :, 0])
    yy1 = np.maximum(a[:, None, 1], b[None, :, 1])
    xx2 = np.minimum(a[:, None, 2], b[None, :, 2])
    yy2 = np.minimum(a[:, None, 3], b[None, :, 3])

    inter = np.maximum(0.0, xx2 - xx1) * np.maximum(0.0, yy2 - yy1)
    union = _areas(a)[:, None] + _areas(b)[None, :] - inter
    out = np.zeros_like(inter)
    np.divide(inter, union, out=out, where=union > 0.0)
    return out


def nms(boxes: np.ndarray, scores: np.ndarray, cfg: NMSConfig = NMSConfig()) -> np.ndarray:
    """
    NumPy NMS. Expects boxes shape (N,4) in xyxy and scores shape (N,).
    Returns indices of boxes to keep, best first.

    Equal scores keep their input order (stable sort), so the result is reproducible.
    """

    boxes = np.asarray(boxes, dtype=np.float64).reshape(-1, 4)
    scores = np.asarray(scores, dtype=np.float64).reshape(-1)
    if boxes.shape[0] == 0:
        return np.empty((0,), dtype=np.int64)
    if boxes.shape[0] != scores.shape[0]:
        raise ValueError(f"boxes and scores length mismatch: {boxes.shape[0]} vs {scores.shape[0]}")

    order = np.argsort(-scores, kind="stable")
    keep: List[int] = []

    while order.size > 0 and len(keep) < cfg.max_detections:
        i = order[0]
        keep.append(int(i))
        if order.size == 1:
            break

        overlap = iou_one_to_many(boxes[i], boxes[order[1:]])
        inds = np.where(overlap <= cfg.iou_threshold)[0]
        order = order[inds + 1]

    return np.array(keep, dtype=np.int64)


def _arrays(candidates: Sequence[CandidateDetection]) -> Tuple[np.ndarray, np.ndarray]:
    boxes = np.array([c.as_xyxy() for c in candidates], dtype=np.float64).reshape(-1, 4)
    scores = np.array([c.score for c in candidates], dtype=np.float64)
    return boxes, scores


def _by_score(candidates: List[CandidateDetection]) -> List[CandidateDetection]:
    # sorted() is stable: ties keep their current order.
    return sorted(candidates, key=lambda c: -c.score)


def suppress(candidates: Sequence[CandidateDetection], cfg: NMSConfig = NMSConfig()) -> List[CandidateDetection]:
    """
    Per-class NMS (or class-agnostic if configured).

    Survivors are returned best score first; classes are visited in ascending id
    order so ties across classes resolve the same way on every run.
    """

    items = list(candidates)
    if not items:
        return []

    if cfg.class_agnostic:
        boxes, scores = _arrays(items)
        return [items[i] for i in nms(boxes, scores, cfg)]

    partitions: Dict[int, List[int]] = {}
    for idx, cand in enumerate(items):
        partitions.setdefault(int(cand.class_id), []).append(idx)

    kept: List[CandidateDetection] = []
    for cls in sorted(partitions):
        members = [items[i] for i in partitions[cls]]
        boxes, scores = _arrays(members)
        kept.extend(members[i] for i in nms(boxes, scores, cfg))

    return _by_score(kept)[: cfg.max_detections]


def select_topk(candidates: Sequence[CandidateDetection], max_detections: int) -> List[CandidateDetection]:
    """
    Keep the `max_detections` best candidates without suppression.
    """

    return _by_score(list(candidates))[: int(max_detections)]
