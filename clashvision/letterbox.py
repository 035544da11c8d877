from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

import numpy as np

from .errors import InvalidImage


@dataclass(frozen=True)
class LetterboxTransform:
    """
    Uniform resize + symmetric padding from a source image to the model input size.

    Forward: dst = src * scale + pad
    Inverse: src = (dst - pad) / scale

    Pads are kept fractional so the inverse is exact.
    """

    scale: float
    pad_x: float
    pad_y: float
    src_size: Tuple[int, int]  # (w, h)
    dst_size: Tuple[int, int]  # (w, h)

    @classmethod
    def compute(
        cls,
        src_w: int,
        src_h: int,
        dst_w: int = 640,
        dst_h: int = 640,
        *,
        scaleup: bool = True,
    ) -> "LetterboxTransform":
        if src_w <= 0 or src_h <= 0:
            raise InvalidImage(f"Image has zero dimension: {src_w}x{src_h}", stage="letterbox")
        if dst_w <= 0 or dst_h <= 0:
            raise ValueError(f"Target size must be positive, got {dst_w}x{dst_h}")

        # Scale ratio (new / old)
        r = min(float(dst_w) / float(src_w), float(dst_h) / float(src_h))
        if not scaleup:  # only scale down
            r = min(r, 1.0)

        pad_x = (float(dst_w) - float(src_w) * r) / 2.0
        pad_y = (float(dst_h) - float(src_h) * r) / 2.0
        return cls(scale=r, pad_x=pad_x, pad_y=pad_y, src_size=(int(src_w), int(src_h)), dst_size=(int(dst_w), int(dst_h)))

    def to_model(self, x: float, y: float) -> Tuple[float, float]:
        return x * self.scale + self.pad_x, y * self.scale + self.pad_y

    def to_source(self, x: float, y: float) -> Tuple[float, float]:
        return (x - self.pad_x) / self.scale, (y - self.pad_y) / self.scale

    def boxes_to_model(self, boxes_xyxy: np.ndarray) -> np.ndarray:
        out = np.array(boxes_xyxy, dtype=np.float64, copy=True).reshape(-1, 4)
        out[:, [0, 2]] = out[:, [0, 2]] * self.scale + self.pad_x
        out[:, [1, 3]] = out[:, [1, 3]] * self.scale + self.pad_y
        return out

    def boxes_to_source(self, boxes_xyxy: np.ndarray) -> np.ndarray:
        out = np.array(boxes_xyxy, dtype=np.float64, copy=True).reshape(-1, 4)
        out[:, [0, 2]] = (out[:, [0, 2]] - self.pad_x) / self.scale
        out[:, [1, 3]] = (out[:, [1, 3]] - self.pad_y) / self.scale
        return out


def letterbox_image(
    image: np.ndarray,
    transform: LetterboxTransform,
    color: Tuple[int, int, int] = (114, 114, 114),
) -> np.ndarray:
    """
    Resize (bilinear) and pad an HWC image onto a `transform.dst_size` canvas.

    The image is placed with one affine warp at the transform's exact fractional
    pads, so `transform.to_source` inverts the pixel placement with no rounding bias.
    """
    try:
        import cv2  # type: ignore
    except Exception as e:  # pragma: no cover
        raise ImportError("OpenCV is required for letterbox_image(). Install with `pip install opencv-python`.") from e

    h, w = image.shape[:2]
    if (w, h) != tuple(transform.src_size):
        raise InvalidImage(
            f"Image size {w}x{h} does not match transform source size {transform.src_size}", stage="letterbox"
        )

    s = float(transform.scale)
    # Pixel centers sit at +0.5, the same convention cv2.resize uses.
    offset = 0.5 * s - 0.5
    M = np.array(
        [[s, 0.0, transform.pad_x + offset], [0.0, s, transform.pad_y + offset]],
        dtype=np.float64,
    )
    return cv2.warpAffine(
        image,
        M,
        tuple(transform.dst_size),
        flags=cv2.INTER_LINEAR,
        borderMode=cv2.BORDER_CONSTANT,
        borderValue=color,
    )
