from __future__ import annotations

from pathlib import Path
from typing import List, Sequence, Union

import numpy as np

from .errors import InvalidImage

PathLike = Union[str, Path]

DEFAULT_IMAGE_EXTS = ("jpg", "jpeg", "png", "bmp", "webp")


def read_image(path: PathLike) -> np.ndarray:
    """
    Read an image file as OpenCV BGR uint8 (H, W, 3).
    """

    try:
        import cv2  # type: ignore
    except Exception as e:  # pragma: no cover
        raise ImportError("OpenCV is required for read_image(). Install with `pip install opencv-python`.") from e

    p = Path(path)
    if not p.is_file():
        raise InvalidImage(f"Image file not found: {p}", stage="read", source=p.name)
    img = cv2.imread(str(p), cv2.IMREAD_COLOR)
    if img is None:
        raise InvalidImage(f"Could not read image at path: {p}", stage="read", source=p.name)
    return img


def iter_image_paths(
    images_dir: PathLike,
    *,
    recursive: bool = False,
    exts: Sequence[str] = DEFAULT_IMAGE_EXTS,
) -> List[Path]:
    """
    Sorted image files under `images_dir` with one of `exts` (case-insensitive).
    """

    root = Path(images_dir)
    if not root.is_dir():
        raise FileNotFoundError(f"Not a directory: {root}")

    wanted = {e.lstrip(".").lower() for e in exts}
    candidates = root.rglob("*") if recursive else root.glob("*")
    paths = [p for p in candidates if p.is_file() and p.suffix.lower().lstrip(".") in wanted]
    return sorted({p.resolve() for p in paths})
