"""
High‑level orchestration: from detections to a count of individuals.

:func:`count_individuals` is the composition of the two core steps and works
on detections already in memory.  :func:`run_pipeline` ties it together with
the lower‑level components: scanning the input folder, running the detector
on each photo, printing the results table, and optionally recording the run
in the SQLite database and exporting the results.
"""

from __future__ import annotations

import sys
import traceback
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Sequence

import cv2

from .clustering import cluster_detections
from .config import RESULT_SUFFIXES, RunConfig
from .db import init_db, insert_images, record_run_end, record_run_start, update_run_status
from .dedupe import dedupe_detections
from .detections import Detection, DimensionMismatch
from .embedders import Detector, get_detector
from .images import scan_images
from .results_io import write_results

Reporter = Optional[Callable[[str], None]]


def count_individuals(detections: Sequence[Detection], iou_threshold: float = 0.3,
                      distance_threshold: float = 0.6, report: Reporter = None) -> int:
    """Number of distinct individuals among the detections of one image."""
    unique = dedupe_detections(detections, iou_threshold, report=report)
    return len(cluster_detections(unique, distance_threshold, report=report))


@dataclass
class ImageResult:
    """Counts for one processed image."""
    path: Path
    n_detections: int = 0
    n_unique: int = 0
    n_individuals: int = 0
    error: Optional[str] = None

    def as_record(self) -> dict:
        return {
            "path": str(self.path),
            "n_detections": self.n_detections,
            "n_unique": self.n_unique,
            "n_individuals": self.n_individuals,
            "error": self.error,
        }


@dataclass
class RunSummary:
    """Outcome of :func:`run_pipeline`."""
    results: List[ImageResult] = field(default_factory=list)
    run_id: Optional[int] = None

    @property
    def total(self) -> int:
        return sum(r.n_individuals for r in self.results)


def _stderr(msg: str) -> None:
    print(msg, file=sys.stderr)


def process_image(path: Path, detector: Detector, config: RunConfig) -> ImageResult:
    """Detect faces in one photo and count the individuals in it.

    An unreadable photo or a detector failure is reported on stderr and
    yields a result with zero individuals and the error message set.
    Descriptor dimension mismatches are not caught: they mean the detector
    is broken, not the photo.
    """
    report = _stderr if config.verbose else None
    result = ImageResult(path=path)
    print(f"Processing: {path.name}", file=sys.stderr)
    img = cv2.imread(str(path))
    if img is None:
        result.error = "Failed to load image"
        print(f"  ✗ Error: {result.error}", file=sys.stderr)
        return result
    height, width = img.shape[:2]
    print(f"  ✓ Image loaded ({width}x{height})", file=sys.stderr)
    try:
        detections = detector.detect(img)
    except DimensionMismatch:
        raise
    except (RuntimeError, ValueError, cv2.error) as exc:
        result.error = str(exc)
        print(f"  ✗ Error: {result.error}", file=sys.stderr)
        return result
    result.n_detections = len(detections)
    print(f"  → Found {len(detections)} detection(s)", file=sys.stderr)
    if not detections:
        return result
    unique = dedupe_detections(detections, config.iou_threshold, report=report)
    clusters = cluster_detections(unique, config.distance_threshold, report=report)
    result.n_unique = len(unique)
    result.n_individuals = len(clusters)
    print(f"  → {result.n_individuals} unique individual(s)", file=sys.stderr)
    return result


def print_results(results: Sequence[ImageResult], file=None) -> None:
    """Print the per‑image counts and the total."""
    out = file if file is not None else sys.stdout
    print("========== RESULTS ==========\n", file=out)
    for r in results:
        print(f"{Path(r.path).name}: {r.n_individuals} individual(s)", file=out)
    total = sum(r.n_individuals for r in results)
    print(f"\nTotal: {total} individual(s)\n", file=out)


def run_pipeline(config: RunConfig, detector: Optional[Detector] = None) -> RunSummary:
    """Count individuals in every photo of ``config.input_dir``.

    Parameters
    ----------
    config: RunConfig
        Configuration settings for this run.
    detector: Detector, optional
        Detector to use.  Built from ``config`` when omitted.

    Returns
    -------
    RunSummary
        Per‑image results, and the database run ID when ``config.db_path``
        is set.
    """
    if not config.input_dir.is_dir():
        raise FileNotFoundError(f"Input directory {config.input_dir} does not exist.")
    if config.results_path is not None and config.results_path.suffix.lower() not in RESULT_SUFFIXES:
        raise ValueError(f"Unsupported results format {config.results_path.suffix!r}; use .parquet or .csv")
    paths = list(scan_images(config.input_dir, recursive=config.recursive,
                             use_phash=config.use_phash))
    summary = RunSummary()
    if not paths:
        print("No images found in input directory.")
    else:
        print(f"Found {len(paths)} image(s)\n", file=sys.stderr)

    engine = None
    if config.db_path is not None:
        engine = init_db(config.db_path)
        with engine.connect() as conn:
            summary.run_id = record_run_start(
                conn,
                input_dir=config.input_dir,
                model_name=config.model_name,
                parameters=config.parameters(),
                command_line=config.command_line,
            )

    try:
        if paths:
            if detector is None:
                print("Loading face detection models...", file=sys.stderr)
                detector = get_detector(
                    model_name=config.model_name,
                    min_face_size=config.min_face_size,
                    det_size=config.det_size,
                    use_gpu=config.use_gpu,
                )
            for path in paths:
                summary.results.append(process_image(path, detector, config))
                print("", file=sys.stderr)
    except Exception as exc:
        if engine is not None:
            with engine.connect() as conn:
                update_run_status(conn, summary.run_id, "interrupted", notes=str(exc))
        traceback.print_exc()
        raise

    if paths:
        print_results(summary.results)
    if engine is not None:
        with engine.connect() as conn:
            insert_images(conn, summary.run_id, [r.as_record() for r in summary.results])
            record_run_end(conn, summary.run_id, status="done" if paths else "no_images",
                           n_images=len(summary.results), n_individuals=summary.total)
    if config.results_path is not None:
        write_results(config.results_path, summary.results)
    return summary
