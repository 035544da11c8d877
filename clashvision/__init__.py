"""
YOLO detection pipeline for game screenshots.

Letterbox + tensor encoding, an injected inference engine, output decoding,
NMS and remapping back to image pixels, collected into a JSON report.
Only NumPy and OpenCV are needed for the core; inference runtimes live in
`clashvision.backends`.
"""

from .errors import (
    DetectionError,
    InvalidImage,
    UnsupportedFormat,
    UnsupportedImageFormat,
    InferenceFailure,
    EncodingError,
    StageFailure,
)
from .types import CandidateDetection, Detection, ImageMeta, ImageResult, DetectionReport, ImageFailure, BatchResult
from .letterbox import LetterboxTransform, letterbox_image
from .encoder import TensorEncoder, EncoderConfig, NormalizationConfig
from .decoder import YoloType, Yolov8Decoder, Yolov10Decoder, create_decoder
from .nms import NMSConfig, iou, iou_matrix, nms, suppress, select_topk
from .remap import remap_candidates
from .report import ReportBuilder, DetectionStats, build_report, report_to_json, write_report, write_yolo_txt
from .engine import InferenceEngine, CallableEngine, SerializedEngine
from .config import SessionConfig, load_session_config
from .session import DetectionSession, ModelInfo, load_session, session_from_bytes, find_project_root, resolve_path
from .metadata import DEFAULT_CLASS_NAMES, load_class_names
from .visualize import DrawConfig, draw_detections

__version__ = "0.1.0"

__all__ = [
    "DetectionError",
    "InvalidImage",
    "UnsupportedFormat",
    "UnsupportedImageFormat",
    "InferenceFailure",
    "EncodingError",
    "StageFailure",
    "CandidateDetection",
    "Detection",
    "ImageMeta",
    "ImageResult",
    "DetectionReport",
    "ImageFailure",
    "BatchResult",
    "LetterboxTransform",
    "letterbox_image",
    "TensorEncoder",
    "EncoderConfig",
    "NormalizationConfig",
    "YoloType",
    "Yolov8Decoder",
    "Yolov10Decoder",
    "create_decoder",
    "NMSConfig",
    "iou",
    "iou_matrix",
    "nms",
    "suppress",
    "select_topk",
    "remap_candidates",
    "ReportBuilder",
    "DetectionStats",
    "build_report",
    "report_to_json",
    "write_report",
    "write_yolo_txt",
    "InferenceEngine",
    "CallableEngine",
    "SerializedEngine",
    "SessionConfig",
    "load_session_config",
    "DetectionSession",
    "ModelInfo",
    "load_session",
    "session_from_bytes",
    "find_project_root",
    "resolve_path",
    "DEFAULT_CLASS_NAMES",
    "load_class_names",
    "DrawConfig",
    "draw_detections",
]
