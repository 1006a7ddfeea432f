"""
Configuration structures for counting individuals in a folder of photos.

We use :class:`dataclasses.dataclass` to describe the parameters accepted by
the command line interface and stored with each run in the SQLite database.
Each field corresponds to a user‑controllable tuning parameter, with sensible
defaults.

The :func:`parse_args` function converts command line arguments into a
:class:`RunConfig` instance.
"""

from __future__ import annotations

import argparse
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Dict, Any

# The command line default is slightly stricter than the library default of
# 0.6 used by :func:`facecount.clustering.cluster_detections`.
DEFAULT_DISTANCE_THRESHOLD = 0.55
DEFAULT_IOU_THRESHOLD = 0.3
RESULT_SUFFIXES = (".parquet", ".csv")


@dataclass
class RunConfig:
    """Parameters controlling a single run.

    Attributes
    ----------
    input_dir: Path
        Directory containing photos to process.
    db_path: Optional[Path]
        SQLite database used to record run metadata and per‑image counts.
        Nothing is recorded when omitted.
    results_path: Optional[Path]
        File the results table is exported to.  The format follows the
        suffix: ``.parquet`` or ``.csv``.
    model_name: str
        InsightFace model package used for detection and descriptors.
    min_face_size: int
        Minimum bounding box side length (in pixels) for detected faces.
        ``0`` keeps every detection.
    det_size: int
        Side length of the square detector input.
    use_gpu: bool
        Whether to request the CUDA execution provider.
    iou_threshold: float
        Detections overlapping an earlier one by more than this IoU are
        dropped as duplicates.
    distance_threshold: float
        Euclidean descriptor distance below which two faces are linked to
        the same individual.
    recursive: bool
        Whether to descend into subdirectories of ``input_dir``.
    use_phash: bool
        Whether to skip photos whose perceptual hash was already seen.
    verbose: bool
        Print per‑face diagnostics (filtered counts, distance matrix).
    command_line: Optional[str]
        Full original command line invocation, recorded for reproducibility.
    """
    input_dir: Path
    db_path: Optional[Path] = None
    results_path: Optional[Path] = None
    model_name: str = "buffalo_l"
    min_face_size: int = 0
    det_size: int = 640
    use_gpu: bool = True
    iou_threshold: float = DEFAULT_IOU_THRESHOLD
    distance_threshold: float = DEFAULT_DISTANCE_THRESHOLD
    recursive: bool = False
    use_phash: bool = False
    verbose: bool = False
    command_line: Optional[str] = None
    # Additional fields can be stored as needed
    extra: Dict[str, Any] = field(default_factory=dict)

    def parameters(self) -> Dict[str, Any]:
        """JSON‑serialisable tuning parameters, as stored with a run."""
        return {
            "iou_threshold": self.iou_threshold,
            "distance_threshold": self.distance_threshold,
            "min_face_size": self.min_face_size,
            "det_size": self.det_size,
            "recursive": self.recursive,
            "use_phash": self.use_phash,
        }


def parse_args(argv: Optional[list[str]] = None) -> RunConfig:
    """Parse command line arguments and return a :class:`RunConfig` instance.

    Parameters
    ----------
    argv: list of str, optional
        List of command line arguments.  If omitted, :mod:`sys.argv` will be
        used.  This parameter facilitates testing.

    Returns
    -------
    RunConfig
        Populated configuration object.
    """
    parser = argparse.ArgumentParser(
        prog="facecount",
        description="Count distinct individuals in each photo of a folder",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--input", dest="input_dir", type=Path, required=True,
                        help="Path to input folder containing images")
    parser.add_argument("--db", dest="db_path", type=Path, default=None,
                        help="SQLite database file to record the run in")
    parser.add_argument("--results", dest="results_path", type=Path, default=None,
                        help="Export the results table to this .csv or .parquet file")
    parser.add_argument("--model", dest="model_name", type=str, default="buffalo_l",
                        help="InsightFace model package used for detection")
    parser.add_argument("--min-face-size", dest="min_face_size", type=int, default=0,
                        help="Discard faces smaller than this many pixels")
    parser.add_argument("--det-size", dest="det_size", type=int, default=640,
                        help="Detector input size (pixels)")
    parser.add_argument("--cpu", dest="use_gpu", action="store_false",
                        help="Run the detector on CPU only")
    parser.add_argument("--iou-threshold", dest="iou_threshold", type=float,
                        default=DEFAULT_IOU_THRESHOLD,
                        help="Box IoU above which detections are treated as duplicates")
    parser.add_argument("--distance-threshold", dest="distance_threshold", type=float,
                        default=DEFAULT_DISTANCE_THRESHOLD,
                        help="Descriptor distance below which faces are the same individual")
    parser.add_argument("--recursive", dest="recursive", action="store_true",
                        help="Also scan subdirectories of the input folder")
    parser.add_argument("--use-phash", dest="use_phash", action="store_true",
                        help="Compute perceptual hashes of images to skip duplicates")
    parser.add_argument("-v", "--verbose", dest="verbose", action="store_true",
                        help="Print filtered counts and pairwise distances per image")
    args = parser.parse_args(argv)

    if not 0.0 <= args.iou_threshold <= 1.0:
        parser.error("--iou-threshold must be between 0 and 1")
    if not args.distance_threshold > 0.0:
        parser.error("--distance-threshold must be positive")
    if args.min_face_size < 0:
        parser.error("--min-face-size must not be negative")
    if args.results_path is not None and args.results_path.suffix.lower() not in RESULT_SUFFIXES:
        parser.error("--results must end in .csv or .parquet")

    return RunConfig(
        input_dir=args.input_dir,
        db_path=args.db_path,
        results_path=args.results_path,
        model_name=args.model_name,
        min_face_size=args.min_face_size,
        det_size=args.det_size,
        use_gpu=args.use_gpu,
        iou_threshold=args.iou_threshold,
        distance_threshold=args.distance_threshold,
        recursive=args.recursive,
        use_phash=args.use_phash,
        verbose=args.verbose,
        command_line=" ".join([parser.prog] + list(argv or [])),
    )
