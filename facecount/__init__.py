"""
Top‑level package for counting distinct individuals in photos.

Exposes the core API: :func:`dedupe_detections`, :func:`cluster_detections`
and their composition :func:`count_individuals`.  These work on detections
already in memory and have no dependency on any model.

The actual functionality is organised into smaller modules:

- :mod:`facecount.detections` – boxes, detections and the dimension error.
- :mod:`facecount.dedupe` – greedy IoU suppression of duplicate detections.
- :mod:`facecount.clustering` – single‑linkage clustering over descriptor distance.
- :mod:`facecount.pipeline` – per‑image counting and the folder runner.
- :mod:`facecount.config` – dataclass for run configuration and argument parsing.
- :mod:`facecount.images` – scanning input folders, optional perceptual hashes.
- :mod:`facecount.embedders` – InsightFace wrapper producing detections.
- :mod:`facecount.db` – SQLite schema and helpers for recording runs.
- :mod:`facecount.results_io` – exporting the results table.

You can run the counter from the command line using the `facecount` script
installed by this package.
"""

from .detections import Detection, DimensionMismatch, Rect
from .dedupe import box_iou, dedupe_detections
from .clustering import DisjointSet, cluster_detections
from .pipeline import count_individuals

__all__ = [
    "Detection",
    "DimensionMismatch",
    "Rect",
    "DisjointSet",
    "box_iou",
    "dedupe_detections",
    "cluster_detections",
    "count_individuals",
]
