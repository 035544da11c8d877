from __future__ import annotations

from typing import List, Sequence

import numpy as np

from .letterbox import LetterboxTransform
from .types import CandidateDetection, Detection


def remap_candidates(candidates: Sequence[CandidateDetection], transform: LetterboxTransform) -> List[Detection]:
    """
    Map model-space candidates back to original image pixels.

    Boxes are converted to corners, un-letterboxed and clamped to [0, W] x [0, H]
    of the source image. Score and class pass through unchanged.
    """

    if not candidates:
        return []

    boxes = np.array([c.as_xyxy() for c in candidates], dtype=np.float64).reshape(-1, 4)
    boxes = transform.boxes_to_source(boxes)

    src_w, src_h = transform.src_size
    boxes[:, [0, 2]] = np.clip(boxes[:, [0, 2]], 0.0, float(src_w))
    boxes[:, [1, 3]] = np.clip(boxes[:, [1, 3]], 0.0, float(src_h))

    out: List[Detection] = []
    for cand, (x1, y1, x2, y2) in zip(candidates, boxes):
        out.append(
            Detection(
                category_id=int(cand.class_id),
                score=float(cand.score),
                x1=float(min(x1, x2)),
                y1=float(min(y1, y2)),
                x2=float(max(x1, x2)),
                y2=float(max(y1, y2)),
            )
        )
    return out
