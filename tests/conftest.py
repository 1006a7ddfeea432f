import numpy as np
import pytest

from facecount.detections import Detection, Rect
from facecount.embedders import Detector


def make_det(box, descriptor, score=None) -> Detection:
    return Detection(Rect(*[float(v) for v in box]), np.asarray(descriptor, dtype=np.float64), score)


class ScriptedDetector(Detector):
    """Returns pre‑baked detection lists, one per call, in order."""

    def __init__(self, batches):
        self.batches = list(batches)
        self.calls = 0

    def detect(self, img):
        self.calls += 1
        batch = self.batches.pop(0)
        if isinstance(batch, Exception):
            raise batch
        return batch


@pytest.fixture
def det():
    return make_det


@pytest.fixture
def scenario_detections():
    """Five detections: 0 and 1 are the same face, 0/2/3 one person, 4 another."""
    return [
        make_det((0, 0, 100, 100), [0.0, 0.0, 0.0]),
        make_det((0, 0, 100, 90), [0.01, 0.0, 0.0]),
        make_det((200, 0, 100, 100), [0.3, 0.0, 0.0]),
        make_det((400, 0, 100, 100), [0.0, 0.3, 0.0]),
        make_det((600, 0, 100, 100), [0.0, 0.0, 0.8]),
    ]


@pytest.fixture
def rng():
    return np.random.default_rng(1234)
