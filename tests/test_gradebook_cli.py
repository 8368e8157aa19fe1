import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from casegrader.cli.gradebook import app

SAMPLE_DIR = Path(__file__).resolve().parents[1] / "data" / "sample"
runner = CliRunner()


@pytest.fixture
def store(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    config_path = tmp_path / "grading.yaml"
    config_path.write_text("log_level: warning\n", encoding="utf-8")
    monkeypatch.setenv("CASEGRADER_CONFIG", str(config_path))
    monkeypatch.delenv("CASEGRADER_STORE", raising=False)
    store_path = tmp_path / "gradebook.sqlite"
    result = runner.invoke(app, ["ingest", str(SAMPLE_DIR / "assignments.yaml"), "--store", str(store_path)])
    assert result.exit_code == 0, result.output
    assert "Ingested 2 assignment(s) with 3 sub-assignment(s)" in _text(result)
    return store_path


def _invoke(store: Path, *args: str):
    return runner.invoke(app, [*args, "--store", str(store)])


def _text(result) -> str:
    return " ".join(result.stdout.split())


def test_submit_then_report(store: Path) -> None:
    result = _invoke(store, "submit", "stu-1", "ortho-module", "--parts", str(SAMPLE_DIR / "submission.yaml"), "--json")
    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert payload["graded"] == ["ortho-1", "ortho-3"]
    assert payload["submission"]["overall_progress"] == 75
    assert payload["version"] == 1

    result = _invoke(store, "completion", "stu-1", "ortho-module", "--json")
    assert json.loads(result.stdout)["is_completed"] is False

    result = _invoke(store, "stats", "coding101", "stu-1", "--json")
    stats = json.loads(result.stdout)["stats"]
    assert (stats["total_assigned"], stats["completed"], stats["pending"]) == (2, 0, 2)

    result = _invoke(store, "summary", "stu-1", "ortho-module", "--json")
    summary = json.loads(result.stdout)
    assert [part["submitted"] for part in summary["parts"]] == [True, False, True]

    result = _invoke(store, "status", "stu-1")
    assert result.exit_code == 0
    assert "Orthopedic module" in _text(result)

    result = _invoke(store, "roster", "ortho-module", "--json")
    assert [row["student_id"] for row in json.loads(result.stdout)] == ["stu-1"]


def test_resubmission_is_rejected_with_exit_code(store: Path) -> None:
    parts = str(SAMPLE_DIR / "submission.yaml")
    assert _invoke(store, "submit", "stu-1", "ortho-module", "--parts", parts).exit_code == 0

    result = _invoke(store, "submit", "stu-1", "ortho-module", "--parts", parts)
    assert result.exit_code == 1
    assert "Already submitted: ortho-1, ortho-3" in _text(result)

    result = _invoke(store, "submit", "stu-1", "ortho-module", "--parts", parts, "--resubmission", "overwrite")
    assert result.exit_code == 0, result.output


def test_table_output_and_regrade(store: Path) -> None:
    result = _invoke(store, "submit", "stu-1", "ortho-module", "--parts", str(SAMPLE_DIR / "submission.yaml"))
    assert result.exit_code == 0, result.output
    assert "ortho-1" in result.stdout
    assert "75%" in result.stdout

    result = _invoke(store, "regrade", "stu-1", "ortho-module", "--json")
    assert result.exit_code == 0, result.output
    assert json.loads(result.stdout)["stored"] is False


def test_start_timed_attempt(store: Path) -> None:
    result = _invoke(store, "start", "stu-1", "cardio-intake", "--json")
    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert payload["must_submit_by"] is not None

    result = _invoke(store, "start", "stu-1", "ortho-module")
    assert "No time limit" in _text(result)


def test_errors_exit_with_code_one(store: Path, tmp_path: Path) -> None:
    result = _invoke(store, "summary", "stu-1", "missing")
    assert result.exit_code == 1
    assert "Assignment missing not found" in _text(result)

    bad_parts = tmp_path / "parts.json"
    bad_parts.write_text(json.dumps({"sub_assignment_id": "ortho-1"}), encoding="utf-8")
    result = _invoke(store, "submit", "stu-1", "ortho-module", "--parts", str(bad_parts))
    assert result.exit_code == 1
    assert "Malformed submission payload" in _text(result)

    result = _invoke(store, "completion", "stu-1", "ortho-module", "--policy", "lenient")
    assert result.exit_code != 0


def test_ingest_missing_file(tmp_path: Path) -> None:
    result = runner.invoke(app, ["ingest", str(tmp_path / "none.yaml"), "--store", str(tmp_path / "g.sqlite")])
    assert result.exit_code == 1
    assert "does not exist" in _text(result)


def test_config_store_path_is_used_without_store_option(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config_path = tmp_path / "grading.yaml"
    config_path.write_text(
        "log_level: warning\nstore:\n  backend: sqlite\n  sqlite_path: db/grades.sqlite\n",
        encoding="utf-8",
    )
    monkeypatch.delenv("CASEGRADER_STORE", raising=False)
    monkeypatch.delenv("CASEGRADER_CONFIG", raising=False)
    monkeypatch.chdir(tmp_path)

    result = runner.invoke(app, ["ingest", str(SAMPLE_DIR / "assignments.yaml"), "--config", str(config_path)])
    assert result.exit_code == 0, result.output

    parts = str(SAMPLE_DIR / "submission.yaml")
    result = runner.invoke(
        app, ["submit", "stu-1", "ortho-module", "--parts", parts, "--config", str(config_path), "--json"]
    )
    assert result.exit_code == 0, result.output
    assert json.loads(result.stdout)["version"] == 1

    assert (tmp_path / "db" / "grades.sqlite").exists()
    assert not (tmp_path / "outputs").exists()
