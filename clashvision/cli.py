from __future__ import annotations

import argparse
import logging
import sys
from collections import defaultdict
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from .config import SessionConfig, load_session_config
from .errors import DetectionError
from .ingest import DEFAULT_IMAGE_EXTS, iter_image_paths, read_image
from .logging_utils import configure_logging
from .metadata import DEFAULT_CLASS_NAMES, load_class_names
from .report import DetectionStats, write_report, write_yolo_txt
from .session import load_session
from .types import BatchResult, Detection
from .visualize import DrawConfig, draw_detections

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="clashvision",
        description="Run a YOLO detector on an image (or a directory of images) and write a JSON detection report.",
    )
    parser.add_argument("input", help="Input image path, or a directory of images.")
    parser.add_argument("output", help="Output report path (JSON).")
    parser.add_argument("--config", default=None, help="Session config JSON (flags below override it).")
    parser.add_argument("--model", default="models/best.onnx", help="Path to the exported model (.onnx/.torchscript).")
    parser.add_argument("--backend", default=None, help="Force backend: onnxruntime / torchscript.")
    parser.add_argument("--model-type", default=None, help="Output layout: yolov8 (default) or yolov10.")
    parser.add_argument("--imgsz", type=int, default=None, help="Letterbox input size (e.g., 640).")
    parser.add_argument("--conf", type=float, default=None, help="Confidence threshold.")
    parser.add_argument("--iou", type=float, default=None, help="IoU threshold for NMS.")
    parser.add_argument("--no-nms", action="store_true", help="Disable NMS and only keep top-K detections by score.")
    parser.add_argument("--class-agnostic", action="store_true", help="Let boxes of different classes suppress each other.")
    parser.add_argument("--workers", type=int, default=None, help="Images processed in parallel (directory input).")
    parser.add_argument("--fail-fast", action="store_true", help="Abort on the first image that fails.")
    parser.add_argument("--metadata", default=None, help="Class names metadata.yaml (default: built-in names).")
    parser.add_argument("--annotated-dir", default=None, help="Also write annotated images to this directory.")
    parser.add_argument("--yolo-txt-dir", default=None, help="Also write YOLO label .txt files to this directory.")
    parser.add_argument(
        "--onnx-providers",
        default=None,
        help='Comma-separated ORT providers, e.g. "CUDAExecutionProvider,CPUExecutionProvider".',
    )
    parser.add_argument("--recursive", action="store_true", help="Recursively search for images in a directory input.")
    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument("-v", "--verbose", action="store_true", help="Debug logging.")
    verbosity.add_argument("-q", "--quiet", action="store_true", help="Only warnings and errors.")
    return parser


def _parse_providers(raw: Optional[str]) -> Optional[List[str]]:
    if raw is None:
        return None
    # Shell line continuations and copy/paste can leave stray quotes/backticks.
    parts = [p.strip().strip("'\"`") for p in str(raw).split(",")]
    parts = [p for p in parts if p]
    return parts or None


def _session_config(args: argparse.Namespace) -> SessionConfig:
    cfg = load_session_config(Path(args.config)) if args.config else SessionConfig()
    if args.imgsz is not None and args.imgsz < 32:
        raise ValueError("--imgsz must be >= 32")
    return cfg.with_overrides(
        model_type=args.model_type,
        input_size=(int(args.imgsz), int(args.imgsz)) if args.imgsz is not None else None,
        conf_threshold=args.conf,
        iou_threshold=args.iou,
        use_nms=False if args.no_nms else None,
        class_agnostic_nms=True if args.class_agnostic else None,
        workers=args.workers,
        fail_fast=True if args.fail_fast else None,
    )


def _collect_inputs(args: argparse.Namespace) -> Tuple[List[Tuple[str, Path]], bool]:
    src = Path(args.input)
    if src.is_dir():
        paths = iter_image_paths(src, recursive=args.recursive)
        if not paths:
            raise FileNotFoundError(
                f"No images found under {src} with extensions {list(DEFAULT_IMAGE_EXTS)} (recursive={args.recursive})."
            )
        root = src.resolve()
        return [(p.relative_to(root).as_posix(), p) for p in paths], True
    return [(src.name, src)], False


def _group_by_image(result: BatchResult) -> Dict[int, List[Detection]]:
    grouped: Dict[int, List[Detection]] = defaultdict(list)
    for det, image_id in zip(result.report.detections, result.report.image_ids):
        grouped[image_id].append(det)
    return grouped


def _write_extras(
    args: argparse.Namespace,
    result: BatchResult,
    paths: Dict[str, Path],
    class_names: Dict[int, str],
) -> None:
    if not args.annotated_dir and not args.yolo_txt_dir:
        return
    grouped = _group_by_image(result)
    for image_id, meta in enumerate(result.report.images, start=1):
        dets = grouped.get(image_id, [])
        stem = Path(meta.file_name).with_suffix("")
        if args.yolo_txt_dir:
            write_yolo_txt(dets, (meta.width, meta.height), Path(args.yolo_txt_dir) / f"{stem.as_posix()}.txt")
        if args.annotated_dir:
            import cv2  # type: ignore

            vis = draw_detections(
                read_image(paths[meta.file_name]), dets, class_names=class_names, cfg=DrawConfig(show_confidence=True)
            )
            out = Path(args.annotated_dir) / f"{stem.as_posix()}.jpg"
            out.parent.mkdir(parents=True, exist_ok=True)
            if not cv2.imwrite(str(out), vis):
                raise OSError(f"Failed to write annotated image: {out}")


def run(args: argparse.Namespace) -> int:
    cfg = _session_config(args)
    class_names = load_class_names(args.metadata) if args.metadata else dict(DEFAULT_CLASS_NAMES)
    items, is_batch = _collect_inputs(args)
    if not is_batch:
        # A single image either succeeds or the whole run fails.
        cfg = cfg.with_overrides(fail_fast=True)

    with load_session(
        args.model,
        cfg,
        backend=args.backend,
        class_names=class_names,
        onnx_providers=_parse_providers(args.onnx_providers),
    ) as session:
        info = session.model_info()
        logger.info(
            "Model %s via %s, input %dx%d, conf=%.2f, iou=%.2f",
            info.model_type,
            info.backend,
            info.input_size[0],
            info.input_size[1],
            info.conf_threshold,
            info.iou_threshold,
        )
        result = session.process_batch(items, progress=is_batch and not args.quiet)

    if not result.report.images:
        first = result.failures[0]
        print(f"error: {first.error}", file=sys.stderr)
        return 1

    out = write_report(result.report, args.output)
    _write_extras(args, result, {name: path for name, path in items}, class_names)

    stats = DetectionStats.from_detections(result.report.detections)
    print(f"Wrote report: {out}")
    print(f"Images: {len(result.report.images)} (failed: {len(result.failures)})")
    print(f"Detections: {stats.total_detections}")
    for failure in result.failures:
        print(f"skipped: {failure.error}", file=sys.stderr)
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    level = logging.DEBUG if args.verbose else logging.WARNING if args.quiet else logging.INFO
    configure_logging(level)

    try:
        return run(args)
    except DetectionError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    except (FileNotFoundError, ValueError, ImportError, OSError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
