from __future__ import annotations

import argparse
import time
from dataclasses import dataclass
from typing import Dict, List, Sequence

import numpy as np

from clashvision import DetectionSession, SessionConfig, load_session
from clashvision.ingest import read_image
from clashvision.nms import select_topk, suppress
from clashvision.remap import remap_candidates

STAGES = ("encode", "infer", "decode", "nms", "topk", "remap")


@dataclass(frozen=True)
class StageTiming:
    stage: str
    samples: int
    mean_ms: float
    p50_ms: float
    p95_ms: float
    max_ms: float

    @classmethod
    def from_seconds(cls, stage: str, seconds: Sequence[float]) -> "StageTiming":
        if not seconds:
            return cls(stage, 0, 0.0, 0.0, 0.0, 0.0)
        ms = np.asarray(seconds, dtype=np.float64) * 1000.0
        p50, p95 = np.percentile(ms, [50.0, 95.0])
        return cls(stage, int(ms.size), float(ms.mean()), float(p50), float(p95), float(ms.max()))

    def line(self) -> str:
        return (
            f"{self.stage:<7} n={self.samples} mean={self.mean_ms:.3f}ms "
            f"p50={self.p50_ms:.3f}ms p95={self.p95_ms:.3f}ms max={self.max_ms:.3f}ms"
        )


def _synthetic_output(n: int, n_classes: int, imgsz: int) -> np.ndarray:
    # Channel-major (1, 4 + C, N) like a YOLOv8 export.
    rng = np.random.default_rng(0)
    out = np.zeros((1, 4 + n_classes, n), dtype=np.float32)
    out[0, 0:2, :] = rng.uniform(0, imgsz, size=(2, n))
    out[0, 2:4, :] = rng.uniform(5, 80, size=(2, n))
    out[0, 4:, :] = rng.uniform(0.0, 1.0, size=(n_classes, n))
    return out


def main() -> int:
    parser = argparse.ArgumentParser(description="Per-stage latency of the detection pipeline (encode/infer/decode/NMS/remap).")
    src = parser.add_mutually_exclusive_group(required=True)
    src.add_argument("--model", default=None, help="Path to a YOLO model (.onnx/.torchscript).")
    src.add_argument(
        "--synthetic-boxes",
        type=int,
        default=None,
        help="Model-free benchmark: a stub engine returns N random candidates.",
    )
    parser.add_argument("--image", default=None, help="Input image (default: a random 853x640 frame).")
    parser.add_argument("--backend", default=None, help="Force backend: onnxruntime / torchscript.")
    parser.add_argument("--imgsz", type=int, default=640, help="Letterbox input size (e.g., 640).")
    parser.add_argument("--conf", type=float, default=0.25, help="Confidence threshold.")
    parser.add_argument("--iou", type=float, default=0.45, help="IoU threshold for NMS.")
    parser.add_argument("--synthetic-classes", type=int, default=2, help="For --synthetic-boxes: number of classes.")
    parser.add_argument(
        "--onnx-providers",
        default=None,
        help='Comma-separated ORT providers, e.g. "CUDAExecutionProvider,CPUExecutionProvider".',
    )
    parser.add_argument("--warmup", type=int, default=10, help="Iterations to run but not record.")
    parser.add_argument("--repeats", type=int, default=50, help="Recorded iterations.")
    args = parser.parse_args()

    if args.warmup < 0:
        raise ValueError("--warmup must be >= 0")
    if args.repeats < 1:
        raise ValueError("--repeats must be >= 1")
    if args.imgsz < 32:
        raise ValueError("--imgsz must be >= 32")

    cfg = SessionConfig(
        input_size=(int(args.imgsz), int(args.imgsz)),
        conf_threshold=float(args.conf),
        iou_threshold=float(args.iou),
    )

    if args.image is not None:
        frame = read_image(args.image)
    else:
        frame = np.random.default_rng(1).integers(0, 256, size=(640, 853, 3), dtype=np.uint8)

    if args.synthetic_boxes is not None:
        if args.synthetic_boxes < 1:
            raise ValueError("--synthetic-boxes must be >= 1")
        if args.synthetic_classes < 1:
            raise ValueError("--synthetic-classes must be >= 1")
        fixture = _synthetic_output(int(args.synthetic_boxes), int(args.synthetic_classes), int(args.imgsz))
        session = DetectionSession(lambda blob: fixture, cfg, backend_name="synthetic")
    else:
        providers = None
        if args.onnx_providers:
            providers = [p.strip() for p in str(args.onnx_providers).split(",") if p.strip()]
        session = load_session(args.model, cfg, backend=args.backend, onnx_providers=providers)

    timings: Dict[str, List[float]] = {name: [] for name in STAGES}
    with session:
        for i in range(int(args.warmup) + int(args.repeats)):
            t0 = time.perf_counter()
            blob, transform = session.encoder(frame)
            t1 = time.perf_counter()
            output = session._infer(blob)
            t2 = time.perf_counter()
            candidates = session.decoder.decode(output)
            t3 = time.perf_counter()
            survivors = suppress(candidates, session.nms_cfg)
            t4 = time.perf_counter()
            _ = select_topk(candidates, session.nms_cfg.max_detections)
            t5 = time.perf_counter()
            _ = remap_candidates(survivors, transform)
            t6 = time.perf_counter()

            if i < int(args.warmup):
                continue
            for name, dt in zip(STAGES, (t1 - t0, t2 - t1, t3 - t2, t4 - t3, t5 - t4, t6 - t5)):
                timings[name].append(dt)

    for name in STAGES:
        print(StageTiming.from_seconds(name, timings[name]).line())
    print(f"candidates={len(candidates)} after_nms={len(survivors)} samples_recorded={int(args.repeats)}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
