"""
Clustering of face descriptors into individuals.

Detections of one image are grouped by single linkage: two faces belong to
the same individual when a chain of pairwise descriptor distances, each
below the threshold, connects them.  The implementation builds the exact
Euclidean distance matrix with numpy, walks all index pairs in ascending
distance order and merges them with a union–find structure.  No approximate
neighbour search is involved; the grouping is exact.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np

from .detections import Detection, DimensionMismatch


class DisjointSet:
    """Union–find over the indices ``0..n-1``.

    Parents live in a flat list; :meth:`find` compresses paths iteratively
    (path halving) and :meth:`union` attaches the second root under the first.
    """

    def __init__(self, n: int) -> None:
        self.parent = list(range(n))

    def __len__(self) -> int:
        return len(self.parent)

    def find(self, x: int) -> int:
        parent = self.parent
        while parent[x] != x:
            parent[x] = parent[parent[x]]
            x = parent[x]
        return x

    def union(self, a: int, b: int) -> bool:
        """Merge the sets of ``a`` and ``b``; return ``False`` if already joined."""
        ra, rb = self.find(a), self.find(b)
        if ra == rb:
            return False
        self.parent[rb] = ra
        return True

    def groups(self) -> List[List[int]]:
        """Partition as lists of indices.

        Groups appear in order of their smallest member and members keep
        ascending index order.
        """
        comp: Dict[int, List[int]] = defaultdict(list)
        for i in range(len(self.parent)):
            comp[self.find(i)].append(i)
        return list(comp.values())


def _stack_descriptors(descriptors: Sequence[np.ndarray]) -> np.ndarray:
    arrays = [np.asarray(d, dtype=np.float64) for d in descriptors]
    for idx, arr in enumerate(arrays):
        if arr.ndim != 1:
            raise DimensionMismatch(f"descriptor {idx} has shape {arr.shape}, expected a vector")
    dims = {arr.shape[0] for arr in arrays}
    if len(dims) > 1:
        first = arrays[0].shape[0]
        bad = next(i for i, arr in enumerate(arrays) if arr.shape[0] != first)
        raise DimensionMismatch(
            f"descriptor {bad} has {arrays[bad].shape[0]} dimensions, descriptor 0 has {first}"
        )
    return np.stack(arrays)


def distance_matrix(descriptors: Sequence[np.ndarray]) -> np.ndarray:
    """Pairwise Euclidean distances between descriptors.

    Parameters
    ----------
    descriptors: sequence of ndarray, each shape (dim,)
        All descriptors must share the same ``dim``.

    Returns
    -------
    ndarray, shape (n, n)
        Symmetric matrix with a zero diagonal.  Entries involving NaN or
        infinite components are NaN (or inf) rather than raising.

    Raises
    ------
    DimensionMismatch
        If descriptor lengths differ.
    """
    if len(descriptors) == 0:
        return np.zeros((0, 0), dtype=np.float64)
    emb = _stack_descriptors(descriptors)
    # inf - inf yields NaN, which is the intended distance
    with np.errstate(invalid="ignore", over="ignore"):
        diff = emb[:, None, :] - emb[None, :, :]
        dist = np.sqrt(np.sum(diff * diff, axis=-1))
    np.fill_diagonal(dist, 0.0)
    return dist


def sorted_pairs(dist: np.ndarray) -> List[Tuple[int, int, float]]:
    """All index pairs ``i < j`` with their distance, nearest first.

    The sort is stable, so equal distances keep ``(i, j)`` order; NaN
    distances go last.
    """
    n = dist.shape[0]
    rows, cols = np.triu_indices(n, k=1)
    values = dist[rows, cols]
    order = np.argsort(values, kind="stable")
    return [(int(rows[k]), int(cols[k]), float(values[k])) for k in order]


def cluster_indices(descriptors: Sequence[np.ndarray], distance_threshold: float = 0.6,
                    report: Optional[Callable[[str], None]] = None) -> List[List[int]]:
    """Single‑linkage grouping of descriptor indices.

    A pair is merged only when ``distance < distance_threshold``, which is
    false for NaN distances.  The returned groups partition
    ``range(len(descriptors))``.
    """
    n = len(descriptors)
    if n == 0:
        return []
    if n == 1:
        return [[0]]
    dist = distance_matrix(descriptors)
    pairs = sorted_pairs(dist)
    if report is not None:
        report("Distance matrix:")
        for i, j in zip(*np.triu_indices(n, k=1)):
            report(f"  Face {i} <-> Face {j}: {dist[i, j]:.4f}")
    ds = DisjointSet(n)
    for i, j, d in pairs:
        if d < distance_threshold:
            ds.union(i, j)
    return ds.groups()


def cluster_detections(detections: Sequence[Detection], distance_threshold: float = 0.6,
                       report: Optional[Callable[[str], None]] = None) -> List[List[Detection]]:
    """Group detections of one image into individuals.

    Parameters
    ----------
    detections: sequence of Detection
        Deduplicated detections (see :func:`facecount.dedupe.dedupe_detections`).
    distance_threshold: float
        Maximum (exclusive) Euclidean descriptor distance for two faces to be
        linked directly.
    report: callable, optional
        Receives the pairwise distances as text lines.

    Returns
    -------
    list of list of Detection
        One list per individual, ordered by the position of its first member.

    Raises
    ------
    DimensionMismatch
        If the descriptors do not all have the same length.
    """
    if len(detections) == 0:
        return []
    if len(detections) == 1:
        return [[detections[0]]]
    groups = cluster_indices([d.descriptor for d in detections], distance_threshold, report=report)
    return [[detections[i] for i in group] for group in groups]
