from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

import numpy as np

from .metadata import class_label
from .types import Detection


@dataclass(frozen=True)
class DrawConfig:
    line_width: int = 4
    # Blend boxes into the image instead of painting them opaque.
    alpha: float = 1.0
    show_confidence: bool = False
    font_scale: float = 0.5
    num_colors: int = 20


def distinct_colors(n: int) -> List[Tuple[int, int, int]]:
    """
    `n` BGR colors spread evenly over the hue circle (S=0.7, V=0.9).
    """

    if n < 1:
        return []
    hsv = np.zeros((1, n, 3), dtype=np.float32)
    hsv[0, :, 0] = np.arange(n, dtype=np.float32) * (360.0 / n)
    hsv[0, :, 1] = 0.7
    hsv[0, :, 2] = 0.9

    import cv2  # type: ignore

    bgr = cv2.cvtColor(hsv, cv2.COLOR_HSV2BGR)[0]
    return [tuple(int(round(c * 255.0)) for c in px) for px in bgr]  # type: ignore[misc]


def draw_detections(
    image_bgr: np.ndarray,
    detections: Iterable[Detection],
    *,
    class_names: Optional[Dict[int, str]] = None,
    cfg: DrawConfig = DrawConfig(),
) -> np.ndarray:
    """
    Draw boxes (and optional labels) on a copy of an OpenCV BGR image.
    """

    try:
        import cv2  # type: ignore
    except Exception as e:  # pragma: no cover
        raise ImportError("OpenCV is required for draw_detections(). Install with `pip install opencv-python`.") from e

    if image_bgr is None or not hasattr(image_bgr, "shape"):
        raise TypeError("image_bgr must be a NumPy array (BGR).")
    if image_bgr.ndim != 3 or image_bgr.shape[2] != 3:
        raise ValueError(f"Expected image shape (H, W, 3), got {getattr(image_bgr, 'shape', None)}")

    palette = distinct_colors(cfg.num_colors)
    overlay = image_bgr.copy()
    h, w = overlay.shape[:2]

    for det in detections:
        x1, y1, x2, y2 = (int(round(v)) for v in det.as_xyxy())
        x1, x2 = int(np.clip(x1, 0, w - 1)), int(np.clip(x2, 0, w - 1))
        y1, y2 = int(np.clip(y1, 0, h - 1)), int(np.clip(y2, 0, h - 1))
        color = palette[int(det.category_id) % len(palette)]
        cv2.rectangle(overlay, (x1, y1), (max(x2, x1 + 1), max(y2, y1 + 1)), color, thickness=cfg.line_width)

        if cfg.show_confidence:
            label = f"{class_label(det.category_id, class_names)} {det.score:.2f}"
            (_, th), baseline = cv2.getTextSize(label, cv2.FONT_HERSHEY_SIMPLEX, cfg.font_scale, 1)
            y_text = y1 - baseline if y1 - th - baseline >= 0 else min(y1 + th, h - 1)
            cv2.putText(
                overlay, label, (x1, y_text), cv2.FONT_HERSHEY_SIMPLEX, cfg.font_scale, color, 1, lineType=cv2.LINE_AA
            )

    if cfg.alpha >= 1.0:
        return overlay
    return cv2.addWeighted(overlay, float(cfg.alpha), image_bgr, 1.0 - float(cfg.alpha), 0.0)
