"""
Optional inference backends for clashvision.

Backends are kept in a separate module so core functionality (pre/post-processing)
stays lightweight and can be used without installing inference runtimes.
"""

from __future__ import annotations

__all__ = ["OnnxRuntimeBackend", "OnnxRuntimeBackendConfig", "TorchScriptBackend", "TorchScriptBackendConfig"]


def __getattr__(name: str):
    # Import lazily so `import clashvision.backends` works without onnxruntime/torch.
    if name in ("OnnxRuntimeBackend", "OnnxRuntimeBackendConfig"):
        from . import onnxruntime_backend

        return getattr(onnxruntime_backend, name)
    if name in ("TorchScriptBackend", "TorchScriptBackendConfig"):
        from . import torchscript_backend

        return getattr(torchscript_backend, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
