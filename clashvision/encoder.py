from __future__ import annotations

from dataclasses import dataclass, field
from typing import Tuple

import numpy as np

from .errors import InvalidImage, UnsupportedImageFormat
from .letterbox import LetterboxTransform, letterbox_image

IMAGENET_MEAN = (0.485, 0.456, 0.406)
IMAGENET_STD = (0.229, 0.224, 0.225)


@dataclass(frozen=True)
class NormalizationConfig:
    """
    Per-channel (RGB) normalization applied after scaling pixels to [0, 1].
    """

    mean: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    std: Tuple[float, float, float] = (1.0, 1.0, 1.0)

    def __post_init__(self) -> None:
        if len(self.mean) != 3 or len(self.std) != 3:
            raise ValueError("mean and std must have exactly 3 values (R, G, B)")
        if any(float(s) == 0.0 for s in self.std):
            raise ValueError("std values must be non-zero")

    @classmethod
    def none(cls) -> "NormalizationConfig":
        return cls()

    @classmethod
    def imagenet(cls) -> "NormalizationConfig":
        return cls(mean=IMAGENET_MEAN, std=IMAGENET_STD)

    @property
    def is_identity(self) -> bool:
        return tuple(self.mean) == (0.0, 0.0, 0.0) and tuple(self.std) == (1.0, 1.0, 1.0)


@dataclass(frozen=True)
class EncoderConfig:
    input_size: Tuple[int, int] = (640, 640)  # (w, h)
    pad_color: Tuple[int, int, int] = (114, 114, 114)
    normalization: NormalizationConfig = field(default_factory=NormalizationConfig)
    scaleup: bool = True


def as_bgr(image: np.ndarray) -> np.ndarray:
    """
    Bring a grayscale / BGR / BGRA uint8 image to 3-channel BGR.
    """

    if image is None or not isinstance(image, np.ndarray):
        raise UnsupportedImageFormat("Image must be a NumPy array (OpenCV BGR).", stage="encode")
    if image.dtype != np.uint8:
        raise UnsupportedImageFormat(f"Expected uint8 pixels, got dtype {image.dtype}", stage="encode")

    if image.ndim == 2:
        return np.repeat(image[:, :, None], 3, axis=2)
    if image.ndim != 3:
        raise UnsupportedImageFormat(f"Expected image shape (H, W[, C]), got {image.shape}", stage="encode")

    channels = image.shape[2]
    if channels == 3:
        return image
    if channels == 1:
        return np.repeat(image, 3, axis=2)
    if channels == 4:
        return image[:, :, :3]
    raise UnsupportedImageFormat(f"Unsupported channel count: {channels}", stage="encode")


class TensorEncoder:
    """
    Letterbox + normalize an OpenCV BGR image into the NCHW float32 tensor YOLO exports expect.

    Output: (1, 3, H, W), RGB channel order, (pixel / 255 - mean) / std.
    """

    def __init__(self, cfg: EncoderConfig = EncoderConfig()):
        self.cfg = cfg

    def transform_for(self, image: np.ndarray) -> LetterboxTransform:
        if image is None or not hasattr(image, "shape") or len(image.shape) < 2:
            raise UnsupportedImageFormat("Image must be a NumPy array (OpenCV BGR).", stage="encode")
        h, w = int(image.shape[0]), int(image.shape[1])
        dst_w, dst_h = self.cfg.input_size
        return LetterboxTransform.compute(w, h, dst_w, dst_h, scaleup=self.cfg.scaleup)

    def encode(self, image: np.ndarray, transform: LetterboxTransform) -> np.ndarray:
        bgr = as_bgr(image)
        h, w = bgr.shape[:2]
        if h == 0 or w == 0:
            raise InvalidImage(f"Image has zero dimension: {w}x{h}", stage="encode")

        canvas = letterbox_image(bgr, transform, color=self.cfg.pad_color)

        # BGR -> RGB, normalize, HWC -> CHW, add batch
        blob = canvas[:, :, ::-1].astype(np.float32) / 255.0
        norm = self.cfg.normalization
        if not norm.is_identity:
            mean = np.asarray(norm.mean, dtype=np.float32).reshape(1, 1, 3)
            std = np.asarray(norm.std, dtype=np.float32).reshape(1, 1, 3)
            blob = (blob - mean) / std
        blob = np.ascontiguousarray(np.transpose(blob, (2, 0, 1))[None, ...], dtype=np.float32)
        return blob

    def __call__(self, image: np.ndarray) -> Tuple[np.ndarray, LetterboxTransform]:
        transform = self.transform_for(image)
        return self.encode(image, transform), transform
