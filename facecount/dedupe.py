"""
Suppression of duplicate detections of the same face.

Lightweight detectors frequently fire several times on one face.  This
module removes those duplicates with a greedy, first‑wins pass over box
Intersection‑over‑Union: there is no score ranking, the order of the input
list decides which detection of a group survives.  Callers must therefore
hand over detections in a deterministic order (the pipeline sorts by
descending detector confidence).
"""

from __future__ import annotations

from typing import Callable, List, Optional, Sequence

from .detections import Detection, Rect


def box_iou(a: Rect, b: Rect) -> float:
    """Intersection over union of two boxes.

    Returns 0 for disjoint or merely touching boxes, and for any box that is
    not valid (see :meth:`Rect.is_valid`).
    """
    if not (a.is_valid() and b.is_valid()):
        return 0.0
    overlap_w = min(a.right, b.right) - max(a.x, b.x)
    overlap_h = min(a.bottom, b.bottom) - max(a.y, b.y)
    if overlap_w <= 0 or overlap_h <= 0:
        return 0.0
    intersection = overlap_w * overlap_h
    return intersection / (a.area + b.area - intersection)


def dedupe_detections(detections: Sequence[Detection], iou_threshold: float = 0.3,
                      report: Optional[Callable[[str], None]] = None) -> List[Detection]:
    """Drop detections overlapping an earlier detection by more than ``iou_threshold``.

    Parameters
    ----------
    detections: sequence of Detection
        Raw detections of one image, in a stable order.
    iou_threshold: float
        A later detection whose IoU with an accepted one is strictly greater
        than this value is treated as its duplicate.
    report: callable, optional
        Receives a one‑line progress message.

    Returns
    -------
    list of Detection
        Subsequence of ``detections`` in original order.
    """
    n = len(detections)
    if n <= 1:
        return list(detections)
    kept: List[Detection] = []
    suppressed = set()
    for i in range(n):
        if i in suppressed:
            continue
        kept.append(detections[i])
        box_i = detections[i].box
        for j in range(i + 1, n):
            if j in suppressed:
                continue
            if box_iou(box_i, detections[j].box) > iou_threshold:
                suppressed.add(j)
    if report is not None:
        report(f"Filtered to {len(kept)} unique detections")
    return kept
