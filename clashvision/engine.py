"""
Inference engine boundary.

An engine is anything with `run(tensor) -> tensor`. The pipeline hands it a
float32 (1, 3, H, W) blob and interprets whatever comes back with the decoder.
"""

from __future__ import annotations

import threading
from typing import Callable, Optional, Protocol, Union, runtime_checkable

import numpy as np


@runtime_checkable
class InferenceEngine(Protocol):
    def run(self, tensor: np.ndarray) -> np.ndarray:
        ...


class CallableEngine:
    """
    Wrap a plain `fn(blob) -> output` as an engine.
    """

    def __init__(self, fn: Callable[[np.ndarray], np.ndarray], *, thread_safe: bool = False, name: Optional[str] = None):
        self._fn = fn
        self.thread_safe = thread_safe
        self.name = name or getattr(fn, "__name__", "callable")

    def run(self, tensor: np.ndarray) -> np.ndarray:
        return self._fn(tensor)

    def close(self) -> None:
        closer = getattr(self._fn, "close", None)
        if callable(closer):
            closer()


class SerializedEngine:
    """
    Funnel every `run()` through one lock, for engines that are not safe to call concurrently.
    """

    thread_safe = True

    def __init__(self, inner: InferenceEngine):
        self.inner = inner
        self._lock = threading.Lock()

    def run(self, tensor: np.ndarray) -> np.ndarray:
        with self._lock:
            return self.inner.run(tensor)

    def close(self) -> None:
        closer = getattr(self.inner, "close", None)
        if callable(closer):
            closer()


EngineLike = Union[InferenceEngine, Callable[[np.ndarray], np.ndarray]]


def as_engine(engine: EngineLike) -> InferenceEngine:
    if hasattr(engine, "run") and callable(getattr(engine, "run")):
        return engine  # type: ignore[return-value]
    if callable(engine):
        return CallableEngine(engine)
    raise TypeError(f"Expected an object with run(tensor) or a callable, got {type(engine).__name__}")


def thread_safe_engine(engine: InferenceEngine) -> InferenceEngine:
    """
    Return `engine` if it declares `thread_safe = True`, otherwise a serialized wrapper.
    """

    if getattr(engine, "thread_safe", False):
        return engine
    return SerializedEngine(engine)
