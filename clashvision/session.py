from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from contextlib import contextmanager
from dataclasses import dataclass
from functools import partial
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Optional, Sequence, Tuple, Union

import numpy as np
from tqdm import tqdm

from .config import SessionConfig
from .decoder import create_decoder
from .encoder import TensorEncoder
from .engine import EngineLike, as_engine, thread_safe_engine
from .errors import DetectionError, InferenceFailure, InvalidImage, StageFailure, UnsupportedFormat
from .ingest import read_image
from .nms import select_topk, suppress
from .remap import remap_candidates
from .report import ReportBuilder
from .types import BatchResult, Detection, ImageFailure, ImageMeta, ImageResult

PathLike = Union[str, Path]
ImageSource = Union[np.ndarray, str, Path]
BatchItem = Union[ImageSource, Tuple[str, ImageSource]]

logger = logging.getLogger(__name__)


def find_project_root(
    start: Optional[PathLike] = None,
    markers: Sequence[str] = ("pyproject.toml", "setup.py", ".git", "requirements.txt"),
) -> Path:
    """
    Best-effort project root discovery.

    Useful when models live in `<root>/models` and the caller runs from a subdirectory.
    """

    p = Path(start) if start is not None else Path.cwd()
    p = p.resolve()

    # If a file is provided, start from its directory.
    if p.is_file():
        p = p.parent

    for parent in (p, *p.parents):
        for m in markers:
            if (parent / m).exists():
                return parent
    return p


def resolve_path(path: PathLike, root: Optional[PathLike] = "auto") -> Path:
    """
    Resolve `path` to an absolute Path.

    - Absolute paths are returned as-is.
    - Relative paths that exist from the current directory are used as-is.
    - Otherwise they are resolved against `root`, or the project root when "auto".
    """

    p = Path(path)
    if p.is_absolute():
        return p
    if p.exists():
        return p.resolve()

    if root == "auto" or root is None:
        base = find_project_root()
    else:
        base = Path(root).resolve()

    return (base / p).resolve()


@dataclass(frozen=True)
class ModelInfo:
    model_type: str
    backend: str
    input_size: Tuple[int, int]
    conf_threshold: float
    iou_threshold: float
    use_nms: bool


@contextmanager
def _stage(name: str, source: str) -> Iterator[None]:
    try:
        yield
    except DetectionError as exc:
        raise exc.with_context(stage=name, source=source)
    except Exception as exc:
        if name == "infer":
            raise InferenceFailure(f"Inference engine error: {exc}", stage=name, source=source) from exc
        raise StageFailure(f"{type(exc).__name__}: {exc}", stage=name, source=source) from exc


class DetectionSession:
    """
    Owned detection pipeline: encode (letterbox) -> engine -> decode -> NMS -> remap.

    The session holds the engine for its whole lifetime; call `close()` (or use it as a
    context manager) to release it. Images are OpenCV BGR `np.ndarray`s, results are in
    original image pixels.
    """

    def __init__(
        self,
        engine: EngineLike,
        cfg: SessionConfig = SessionConfig(),
        *,
        backend_name: Optional[str] = None,
        class_names: Optional[Dict[int, str]] = None,
    ):
        raw = as_engine(engine)
        self.cfg = cfg
        self.backend_name = backend_name or type(raw).__name__
        # Serialized unless the engine says concurrent calls are fine.
        self.engine = thread_safe_engine(raw)
        self.class_names: Dict[int, str] = dict(class_names or {})
        self.encoder = TensorEncoder(cfg.encoder_config())
        self.decoder = create_decoder(cfg.model_type, conf_threshold=cfg.conf_threshold, num_classes=cfg.num_classes)
        self.nms_cfg = cfg.nms_config()
        self._closed = False

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #
    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        closer = getattr(self.engine, "close", None)
        if callable(closer):
            closer()

    @property
    def closed(self) -> bool:
        return self._closed

    def __enter__(self) -> "DetectionSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def model_info(self) -> ModelInfo:
        return ModelInfo(
            model_type=str(self.cfg.model_type),
            backend=self.backend_name,
            input_size=(int(self.cfg.input_size[0]), int(self.cfg.input_size[1])),
            conf_threshold=float(self.cfg.conf_threshold),
            iou_threshold=float(self.cfg.iou_threshold),
            use_nms=bool(self.cfg.use_nms),
        )

    # ------------------------------------------------------------------ #
    # Single image
    # ------------------------------------------------------------------ #
    def _infer(self, blob: np.ndarray) -> np.ndarray:
        output = self.engine.run(blob)
        if hasattr(output, "detach"):
            output = output.detach().cpu().numpy()
        output = np.asarray(output)
        if output.dtype == object or not np.issubdtype(output.dtype, np.number):
            raise UnsupportedFormat(f"Engine returned a non-numeric output (dtype {output.dtype})")
        return output

    def detect(self, image: np.ndarray, *, file_name: str = "image") -> ImageResult:
        if self._closed:
            raise RuntimeError("DetectionSession is closed.")

        with _stage("encode", file_name):
            transform = self.encoder.transform_for(image)
            blob = self.encoder.encode(image, transform)
        with _stage("infer", file_name):
            output = self._infer(blob)
        with _stage("decode", file_name):
            candidates = self.decoder.decode(output)
        with _stage("suppress", file_name):
            if self.cfg.use_nms:
                survivors = suppress(candidates, self.nms_cfg)
            else:
                survivors = select_topk(candidates, self.cfg.max_detections)
        with _stage("remap", file_name):
            detections = remap_candidates(survivors, transform)

        src_w, src_h = transform.src_size
        logger.debug(
            "%s: %d candidates, %d after NMS (%dx%d, scale=%.4f, pad=(%.2f, %.2f))",
            file_name,
            len(candidates),
            len(detections),
            src_w,
            src_h,
            transform.scale,
            transform.pad_x,
            transform.pad_y,
        )
        return ImageResult(meta=ImageMeta(file_name=file_name, width=src_w, height=src_h), detections=detections)

    def __call__(self, image: np.ndarray) -> List[Detection]:
        return self.detect(image).detections

    def detect_path(self, path: PathLike, *, file_name: Optional[str] = None) -> ImageResult:
        name = file_name or Path(path).name
        with _stage("read", name):
            image = read_image(path)
        return self.detect(image, file_name=name)

    # ------------------------------------------------------------------ #
    # Batch
    # ------------------------------------------------------------------ #
    def _run_item(self, name: str, source: ImageSource) -> ImageResult:
        if isinstance(source, (str, Path)):
            return self.detect_path(source, file_name=name)
        return self.detect(source, file_name=name)

    def process_batch(
        self,
        items: Sequence[BatchItem],
        *,
        workers: Optional[int] = None,
        fail_fast: Optional[bool] = None,
        progress: bool = False,
    ) -> BatchResult:
        """
        Run every image through the pipeline and build one report.

        Images that fail with InvalidImage, InferenceFailure or StageFailure are collected in
        `failures` and left out of the report (unless `fail_fast`). UnsupportedFormat
        means the model and decoder disagree, so it aborts the batch.
        """

        n_workers = int(workers if workers is not None else self.cfg.workers)
        stop_early = bool(self.cfg.fail_fast if fail_fast is None else fail_fast)
        if n_workers < 1:
            raise ValueError("workers must be >= 1")

        named = _name_items(items)
        builder = ReportBuilder()
        failures: List[ImageFailure] = []

        def collect(order: int, name: str, get_result: Callable[[], ImageResult]) -> None:
            try:
                result = get_result()
            except (InvalidImage, InferenceFailure, StageFailure) as exc:
                self._record_failure(failures, name, exc, stop_early)
                return
            builder.add(result.meta, result.detections, order=order)

        pbar = tqdm(total=len(named), unit="img", disable=not progress)
        try:
            if n_workers == 1:
                for order, (name, source) in enumerate(named):
                    collect(order, name, partial(self._run_item, name, source))
                    pbar.update(1)
            else:
                with ThreadPoolExecutor(max_workers=n_workers, thread_name_prefix="clashvision") as pool:
                    futures: List["Future[ImageResult]"] = [
                        pool.submit(self._run_item, name, source) for name, source in named
                    ]
                    try:
                        # Merge after join, in input order.
                        for order, ((name, _), fut) in enumerate(zip(named, futures)):
                            collect(order, name, fut.result)
                            pbar.update(1)
                    except BaseException:
                        for fut in futures:
                            fut.cancel()
                        raise
        finally:
            pbar.close()

        return BatchResult(report=builder.build(), failures=failures)

    @staticmethod
    def _record_failure(failures: List[ImageFailure], name: str, exc: DetectionError, stop_early: bool) -> None:
        if stop_early:
            raise exc
        logger.warning("Skipping %s: %s", name, exc)
        failures.append(ImageFailure(file_name=name, stage=exc.stage, error=exc))


def _name_items(items: Sequence[BatchItem]) -> List[Tuple[str, ImageSource]]:
    named: List[Tuple[str, ImageSource]] = []
    for idx, item in enumerate(items):
        if isinstance(item, tuple):
            name, source = item
            named.append((str(name), source))
        elif isinstance(item, (str, Path)):
            named.append((Path(item).name, item))
        else:
            named.append((f"image_{idx + 1}", item))
    return named


def load_session(
    model_path: PathLike,
    cfg: SessionConfig = SessionConfig(),
    *,
    backend: Optional[str] = None,
    root: Optional[PathLike] = "auto",
    class_names: Optional[Dict[int, str]] = None,
    onnx_providers: Optional[Sequence[str]] = None,
    onnx_input_name: Optional[str] = None,
    onnx_output_name: Optional[str] = None,
    torch_device: str = "cpu",
    torch_half: bool = False,
    torch_output_index: int = 0,
) -> DetectionSession:
    """
    Create a detection session for a model on disk.

        with load_session("models/best.onnx") as session:
            result = session.detect(image, file_name="village.png")

    Args:
        model_path: path to the exported model; relative paths resolve against project root by default
        backend: "onnxruntime" or "torchscript"; None infers it from the extension
        root: base directory for resolving relative model paths ("auto" uses best-effort project root)
    """

    resolved = resolve_path(model_path, root=root)
    chosen = backend
    if chosen is None:
        suffix = resolved.suffix.lower()
        if suffix == ".onnx":
            chosen = "onnxruntime"
        elif suffix in {".torchscript", ".ts", ".pt"}:
            chosen = "torchscript"
        else:
            raise ValueError(f"Could not infer backend from extension '{suffix}'. Pass backend=... explicitly.")

    chosen = chosen.lower()
    logger.info("Loading %s model from %s", chosen, resolved)
    if chosen == "onnxruntime":
        from .backends.onnxruntime_backend import OnnxRuntimeBackend, OnnxRuntimeBackendConfig

        ort_backend = OnnxRuntimeBackend(
            resolved,
            OnnxRuntimeBackendConfig(
                providers=onnx_providers,
                input_name=onnx_input_name,
                output_name=onnx_output_name,
            ),
        )
        return DetectionSession(ort_backend, cfg, backend_name="onnxruntime", class_names=class_names)

    if chosen == "torchscript":
        from .backends.torchscript_backend import TorchScriptBackend, TorchScriptBackendConfig

        ts_backend = TorchScriptBackend(
            resolved,
            TorchScriptBackendConfig(device=torch_device, half=torch_half, output_index=torch_output_index),
        )
        return DetectionSession(ts_backend, cfg, backend_name="torchscript", class_names=class_names)

    raise ValueError(f"Unsupported backend: {backend!r}")


def session_from_bytes(
    model_bytes: bytes,
    cfg: SessionConfig = SessionConfig(),
    *,
    class_names: Optional[Dict[int, str]] = None,
    onnx_providers: Optional[Sequence[str]] = None,
) -> DetectionSession:
    """
    Create a session from an in-memory ONNX model (e.g. a model shipped as package data).
    """

    from .backends.onnxruntime_backend import OnnxRuntimeBackend, OnnxRuntimeBackendConfig

    ort_backend = OnnxRuntimeBackend.from_bytes(model_bytes, OnnxRuntimeBackendConfig(providers=onnx_providers))
    return DetectionSession(ort_backend, cfg, backend_name="onnxruntime", class_names=class_names)
