"""
Command‑line entry point for counting individuals in photos.

This module parses command line arguments, constructs a :class:`RunConfig`
object and dispatches to the pipeline runner.
"""

from __future__ import annotations

import sys

from .config import parse_args
from .pipeline import run_pipeline


def _gpu_preflight() -> None:
    """Best-effort check for ONNX Runtime GPU availability.

    This does not stop execution; it only warns when CUDA is not available so
    users know how to enable GPU acceleration.
    """
    try:
        import onnxruntime as ort
    except ImportError:
        # InsightFace will report the missing runtime when the detector loads.
        return
    if "CUDAExecutionProvider" not in set(ort.get_available_providers()):
        print(
            "GPU not detected by ONNX Runtime; falling back to CPU.\n"
            "To enable GPU: pip uninstall -y onnxruntime && pip install onnxruntime-gpu",
            file=sys.stderr,
        )


def main(argv: list[str] | None = None) -> int:
    """Entry point called by the ``facecount`` script."""
    cfg = parse_args(argv)
    if cfg.use_gpu:
        _gpu_preflight()
    try:
        run_pipeline(cfg)
    except FileNotFoundError as exc:
        print(f"Fatal error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
