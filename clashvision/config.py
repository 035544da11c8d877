from __future__ import annotations

import json
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from .decoder import YoloType
from .encoder import EncoderConfig, NormalizationConfig
from .nms import NMSConfig


@dataclass(frozen=True)
class SessionConfig:
    model_type: str = "yolov8"
    input_size: Tuple[int, int] = (640, 640)  # (w, h)
    conf_threshold: float = 0.25
    iou_threshold: float = 0.45
    use_nms: bool = True
    class_agnostic_nms: bool = False
    max_detections: int = 300
    num_classes: Optional[int] = None
    pad_color: Tuple[int, int, int] = (114, 114, 114)
    mean: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    std: Tuple[float, float, float] = (1.0, 1.0, 1.0)
    scaleup: bool = True
    workers: int = 1
    fail_fast: bool = False

    def __post_init__(self) -> None:
        YoloType.from_name(self.model_type)
        if len(self.input_size) != 2 or any(int(v) < 32 for v in self.input_size):
            raise ValueError("input_size must be (w, h) with both >= 32")
        if not 0.0 <= self.conf_threshold <= 1.0:
            raise ValueError("conf_threshold must be within [0, 1]")
        if not 0.0 < self.iou_threshold <= 1.0:
            raise ValueError("iou_threshold must be within (0, 1]")
        if self.max_detections < 1:
            raise ValueError("max_detections must be >= 1")
        if self.num_classes is not None and self.num_classes < 1:
            raise ValueError("num_classes must be >= 1")
        if len(self.pad_color) != 3 or any(not 0 <= int(c) <= 255 for c in self.pad_color):
            raise ValueError("pad_color must be three values within [0, 255]")
        if self.workers < 1:
            raise ValueError("workers must be >= 1")
        # Validates mean/std shape and non-zero std.
        NormalizationConfig(mean=tuple(self.mean), std=tuple(self.std))

    def encoder_config(self) -> EncoderConfig:
        return EncoderConfig(
            input_size=(int(self.input_size[0]), int(self.input_size[1])),
            pad_color=tuple(int(c) for c in self.pad_color),
            normalization=NormalizationConfig(mean=tuple(self.mean), std=tuple(self.std)),
            scaleup=self.scaleup,
        )

    def nms_config(self) -> NMSConfig:
        return NMSConfig(
            iou_threshold=self.iou_threshold,
            max_detections=self.max_detections,
            class_agnostic=self.class_agnostic_nms,
        )

    def with_overrides(self, **overrides: Any) -> "SessionConfig":
        """
        Return a copy with every non-None override applied (CLI flags over file values).
        """

        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


def _require_number(payload: Dict[str, Any], key: str) -> float:
    value = payload[key]
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{key} must be a number")
    return float(value)


def _require_int(payload: Dict[str, Any], key: str) -> int:
    value = payload[key]
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{key} must be an integer")
    return int(value)


def _require_bool(payload: Dict[str, Any], key: str) -> bool:
    value = payload[key]
    if not isinstance(value, bool):
        raise ValueError(f"{key} must be a boolean")
    return value


def _require_number_tuple(payload: Dict[str, Any], key: str, length: int) -> Tuple[float, ...]:
    value = payload[key]
    if not isinstance(value, list) or len(value) != length:
        raise ValueError(f"{key} must be a list of {length} numbers")
    if any(isinstance(v, bool) or not isinstance(v, (int, float)) for v in value):
        raise ValueError(f"{key} must be a list of {length} numbers")
    return tuple(float(v) for v in value)


def _parse_input_size(payload: Dict[str, Any]) -> Tuple[int, int]:
    value = payload["input_size"]
    if isinstance(value, int) and not isinstance(value, bool):
        return int(value), int(value)
    if isinstance(value, list) and len(value) == 2 and all(isinstance(v, int) and not isinstance(v, bool) for v in value):
        return int(value[0]), int(value[1])
    raise ValueError("input_size must be an integer or a [w, h] list of integers")


def session_config_from_dict(payload: Dict[str, Any]) -> SessionConfig:
    allowed = {f.name for f in fields(SessionConfig)}
    unknown = sorted(set(payload.keys()) - allowed)
    if unknown:
        raise ValueError(f"Unknown session config keys: {unknown}")

    kwargs: Dict[str, Any] = {}
    if "model_type" in payload:
        if not isinstance(payload["model_type"], str):
            raise ValueError("model_type must be a string")
        kwargs["model_type"] = payload["model_type"]
    if "input_size" in payload:
        kwargs["input_size"] = _parse_input_size(payload)
    for key in ("conf_threshold", "iou_threshold"):
        if key in payload:
            kwargs[key] = _require_number(payload, key)
    for key in ("max_detections", "workers"):
        if key in payload:
            kwargs[key] = _require_int(payload, key)
    if "num_classes" in payload and payload["num_classes"] is not None:
        kwargs["num_classes"] = _require_int(payload, "num_classes")
    for key in ("use_nms", "class_agnostic_nms", "scaleup", "fail_fast"):
        if key in payload:
            kwargs[key] = _require_bool(payload, key)
    if "pad_color" in payload:
        kwargs["pad_color"] = tuple(int(v) for v in _require_number_tuple(payload, "pad_color", 3))
    for key in ("mean", "std"):
        if key in payload:
            kwargs[key] = _require_number_tuple(payload, key, 3)

    return SessionConfig(**kwargs)


def load_session_config(path: Path) -> SessionConfig:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Session config not found: {path}")
    raw = path.read_text(encoding="utf-8")
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid session config JSON: {path}") from exc
    if not isinstance(payload, dict):
        raise ValueError("Session config must be a JSON object")
    return session_config_from_dict(payload)
