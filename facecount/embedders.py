"""
Face detector wrappers.

This module hides the details of loading and running the upstream face
analysis model.  It uses InsightFace ``FaceAnalysis`` which detects faces
and computes an identity embedding for each of them.  The :class:`Detector`
interface exposes a single method :meth:`detect` which takes a BGR image and
returns :class:`~facecount.detections.Detection` records ready for
deduplication and clustering.

Models are loaded when a detector is constructed and owned by that object;
nothing is cached at module level.
"""

from __future__ import annotations

import math
import sys
from typing import List

import numpy as np

from .detections import Detection, Rect


class Detector:
    """Base class for all detectors."""

    def detect(self, img: np.ndarray) -> List[Detection]:
        """Detect faces in a BGR image.

        Subclasses must return detections in a deterministic order.
        """
        raise NotImplementedError


def order_by_score(detections: List[Detection]) -> List[Detection]:
    """Sort detections by descending confidence, keeping scan order on ties.

    Detections without a finite score are placed last.
    """
    def key(d: Detection) -> float:
        if d.score is None or not math.isfinite(d.score):
            return float("inf")
        return -d.score

    return sorted(detections, key=key)


class InsightFaceDetector(Detector):
    """Wrapper around InsightFace ``FaceAnalysis`` API.

    Parameters
    ----------
    model_name: str
        Name of the model package to load from InsightFace, e.g.
        ``"buffalo_l"`` or ``"antelopev2"``.
    min_face_size: int
        Minimum side length (in pixels) of detected faces.  Smaller faces
        are filtered out.
    det_size: int
        Side length of the square detector input.
    use_gpu: bool
        Whether to use CUDA if available; falls back to CPU otherwise.
    """
    def __init__(self, model_name: str = "buffalo_l", min_face_size: int = 0,
                 det_size: int = 640, use_gpu: bool = True) -> None:
        try:
            from insightface.app import FaceAnalysis
        except ImportError as e:
            raise RuntimeError("InsightFace is not installed.  Install the optional "
                               "dependency with `pip install facecount[insightface]`.") from e
        providers = ["CPUExecutionProvider"]
        if use_gpu:
            try:
                import onnxruntime
                if "CUDAExecutionProvider" in onnxruntime.get_available_providers():
                    providers = ["CUDAExecutionProvider", "CPUExecutionProvider"]
            except ImportError:
                pass
        ctx_id = 0 if "CUDAExecutionProvider" in providers else -1

        # Some InsightFace packages (antelopev2 on certain installs) fail to load
        # their bundled detector; fall back to buffalo_l which always ships one.
        try:
            self.app = FaceAnalysis(name=model_name, providers=providers)
            self.app.prepare(ctx_id=ctx_id, det_size=(det_size, det_size))
        except AssertionError:
            if model_name.lower() != "antelopev2":
                raise
            print(
                "Warning: InsightFace package 'antelopev2' failed to load detection. "
                "Falling back to 'buffalo_l'.",
                file=sys.stderr,
            )
            self.app = FaceAnalysis(name="buffalo_l", providers=providers)
            self.app.prepare(ctx_id=ctx_id, det_size=(det_size, det_size))
        self.min_face_size = min_face_size

    def detect(self, img: np.ndarray) -> List[Detection]:
        faces = self.app.get(img)
        results: List[Detection] = []
        for f in faces:
            x1, y1, x2, y2 = (float(v) for v in f.bbox)
            if min(x2 - x1, y2 - y1) < self.min_face_size:
                continue
            # Boxes may poke out of the frame; clip so they remain valid
            box = Rect.from_corners(max(x1, 0.0), max(y1, 0.0), x2, y2)
            score = float(f.det_score) if hasattr(f, "det_score") else None
            results.append(Detection(box, f.embedding.astype(np.float64), score))
        return order_by_score(results)


def get_detector(model_name: str = "buffalo_l", min_face_size: int = 0,
                 det_size: int = 640, use_gpu: bool = True) -> Detector:
    """Factory function returning a detector instance given a model name."""
    return InsightFaceDetector(model_name=model_name, min_face_size=min_face_size,
                               det_size=det_size, use_gpu=use_gpu)
