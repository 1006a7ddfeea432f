"""
Tests for facecount.pipeline: the composed count and the folder runner.
"""
from pathlib import Path

import cv2
import numpy as np
import pytest

from facecount.config import RunConfig
from facecount.db import get_images, get_run, init_db, list_runs
from facecount.detections import DimensionMismatch
from facecount.pipeline import (
    ImageResult, RunSummary, count_individuals, print_results, process_image, run_pipeline
)
from facecount.results_io import read_results

from conftest import ScriptedDetector, make_det


@pytest.fixture
def photo_dir(tmp_path):
    d = tmp_path / "photos"
    d.mkdir()
    img = np.full((40, 60, 3), 127, dtype=np.uint8)
    cv2.imwrite(str(d / "a.jpg"), img)
    cv2.imwrite(str(d / "b.png"), img)
    (d / "b.png").rename(d / "b.PNG")
    (d / "c.jpg").write_bytes(b"not an image")
    (d / "notes.txt").write_text("ignored")
    return d


def _two_people():
    return [
        make_det((0, 0, 50, 50), [0.0, 0.0], score=0.9),
        make_det((100, 0, 50, 50), [2.0, 0.0], score=0.8),
    ]


def test_count_individuals_scenario(scenario_detections):
    assert count_individuals(scenario_detections, iou_threshold=0.3, distance_threshold=0.6) == 2


def test_count_individuals_empty_and_single():
    assert count_individuals([]) == 0
    assert count_individuals([make_det((0, 0, 10, 10), [1.0])]) == 1


def test_count_individuals_same_face_twice():
    dets = [make_det((0, 0, 50, 50), [0.0, 0.0]), make_det((2, 2, 50, 50), [3.0, 3.0])]
    # overlapping boxes collapse even though descriptors disagree
    assert count_individuals(dets) == 1


def test_count_individuals_report_goes_through_both_steps(scenario_detections):
    lines = []
    count_individuals(scenario_detections, report=lines.append)
    assert lines[0] == "Filtered to 4 unique detections"
    assert lines[1] == "Distance matrix:"
    assert len(lines) == 2 + 6


def test_process_image_counts(photo_dir):
    detector = ScriptedDetector([_two_people() + [make_det((1, 1, 50, 50), [0.1, 0.0])]])
    result = process_image(photo_dir / "a.jpg", detector, RunConfig(input_dir=photo_dir))
    assert result == ImageResult(path=photo_dir / "a.jpg", n_detections=3, n_unique=2,
                                 n_individuals=2)


def test_process_image_unreadable(photo_dir):
    detector = ScriptedDetector([])
    result = process_image(photo_dir / "c.jpg", detector, RunConfig(input_dir=photo_dir))
    assert result.n_individuals == 0
    assert result.error == "Failed to load image"
    assert detector.calls == 0


def test_process_image_detector_failure(photo_dir, capsys):
    detector = ScriptedDetector([RuntimeError("model exploded")])
    result = process_image(photo_dir / "a.jpg", detector, RunConfig(input_dir=photo_dir))
    assert result.n_individuals == 0
    assert result.error == "model exploded"
    assert "✗ Error: model exploded" in capsys.readouterr().err


def test_process_image_verbose_prints_distances(photo_dir, capsys):
    detector = ScriptedDetector([_two_people()])
    process_image(photo_dir / "a.jpg", detector, RunConfig(input_dir=photo_dir, verbose=True))
    err = capsys.readouterr().err
    assert "Filtered to 2 unique detections" in err
    assert "Face 0 <-> Face 1: 2.0000" in err


def test_run_pipeline_end_to_end(photo_dir, tmp_path, capsys):
    db_path = tmp_path / "runs.sqlite"
    results_path = tmp_path / "out" / "results.csv"
    cfg = RunConfig(input_dir=photo_dir, db_path=db_path, results_path=results_path,
                    command_line="facecount --input photos")
    detector = ScriptedDetector([_two_people(), [make_det((0, 0, 10, 10), [1.0, 1.0])]])
    summary = run_pipeline(cfg, detector=detector)

    assert [Path(r.path).name for r in summary.results] == ["a.jpg", "b.PNG", "c.jpg"]
    assert [r.n_individuals for r in summary.results] == [2, 1, 0]
    assert summary.total == 3
    assert detector.calls == 2

    out = capsys.readouterr().out
    assert "========== RESULTS ==========" in out
    assert "a.jpg: 2 individual(s)" in out
    assert "c.jpg: 0 individual(s)" in out
    assert "Total: 3 individual(s)" in out

    engine = init_db(db_path)
    with engine.connect() as conn:
        run = get_run(conn, summary.run_id)
        images = get_images(conn, summary.run_id)
    assert run["status"] == "done"
    assert run["n_images"] == 3
    assert run["n_individuals"] == 3
    assert run["parameters"]["distance_threshold"] == pytest.approx(0.55)
    assert run["command_line"] == "facecount --input photos"
    assert [row["n_individuals"] for row in images] == [2, 1, 0]
    assert images[2]["error"] == "Failed to load image"

    df = read_results(results_path)
    assert df["filename"].tolist() == ["a.jpg", "b.PNG", "c.jpg"]
    assert df["n_individuals"].tolist() == [2, 1, 0]


def test_run_pipeline_empty_folder(tmp_path, capsys):
    empty = tmp_path / "empty"
    empty.mkdir()
    db_path = tmp_path / "runs.sqlite"
    summary = run_pipeline(RunConfig(input_dir=empty, db_path=db_path),
                           detector=ScriptedDetector([]))
    assert summary.results == []
    assert summary.total == 0
    assert "No images found in input directory." in capsys.readouterr().out
    with init_db(db_path).connect() as conn:
        assert get_run(conn, summary.run_id)["status"] == "no_images"


def test_run_pipeline_missing_folder(tmp_path):
    with pytest.raises(FileNotFoundError):
        run_pipeline(RunConfig(input_dir=tmp_path / "nope"), detector=ScriptedDetector([]))


def test_run_pipeline_marks_run_interrupted(photo_dir, tmp_path):
    db_path = tmp_path / "runs.sqlite"
    broken = [make_det((0, 0, 10, 10), [0.0, 0.0]), make_det((50, 50, 10, 10), [0.0, 0.0, 0.0])]
    detector = ScriptedDetector([broken])
    with pytest.raises(DimensionMismatch):
        run_pipeline(RunConfig(input_dir=photo_dir, db_path=db_path), detector=detector)
    with init_db(db_path).connect() as conn:
        runs = list_runs(conn)
    assert runs[0]["status"] == "interrupted"
    assert "dimensions" in runs[0]["notes"]


def test_print_results_total(capsys):
    print_results([ImageResult(Path("x.jpg"), 3, 2, 2), ImageResult(Path("y.jpg"), 1, 1, 1)])
    out = capsys.readouterr().out
    assert "x.jpg: 2 individual(s)" in out
    assert "Total: 3 individual(s)" in out


def test_run_summary_total_empty():
    assert RunSummary().total == 0


def test_run_pipeline_rejects_results_format_before_running(photo_dir, tmp_path, capsys):
    db_path = tmp_path / "runs.sqlite"
    detector = ScriptedDetector([])
    cfg = RunConfig(input_dir=photo_dir, db_path=db_path, results_path=tmp_path / "out.xlsx")
    with pytest.raises(ValueError, match="xlsx"):
        run_pipeline(cfg, detector=detector)
    assert detector.calls == 0
    assert "RESULTS" not in capsys.readouterr().out
    assert not db_path.exists()
