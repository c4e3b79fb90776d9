"""
FabTrack CLI Tests

QC tests proving:
1. Every read command prints from the SQLite store and exits 0
2. A missing job exits 1
3. A store that cannot be opened, or a job document that does not
   validate, exits 4 instead of printing a traceback
4. history --batch only prints that batch's entries
"""

import json
import sqlite3

import pytest

from fabtrack.cli import EXIT_NOT_FOUND, EXIT_OK, EXIT_SYSTEM_ERROR, main
from fabtrack.persistence import PersistenceManager
from fabtrack.workflow import approve_qc, split_batch
from factories import T0, new_job


# =============================================================================
# Test Fixtures
# =============================================================================

@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "fabtrack.db")


@pytest.fixture
def open_job():
    """Job that spent 90s in DESIGN, then split at CUTTING into B1/B2."""
    job = approve_qc(new_job(), "qc", now=T0 + 90_000)
    return split_batch(job, "B1", 60, "alice", now=T0 + 100_000)


@pytest.fixture
def closed_job():
    return new_job(40).model_copy(update={"is_completed": True})


@pytest.fixture
def stored(db_path, open_job, closed_job):
    manager = PersistenceManager(db_path=db_path)
    manager.save_job(open_job.to_wire())
    manager.save_job(closed_job.to_wire())
    return manager


def run(capsys, *argv):
    """Run the CLI and return (exit code, stdout lines, stderr)."""
    with pytest.raises(SystemExit) as exc_info:
        main(list(argv))
    captured = capsys.readouterr()
    return exc_info.value.code, captured.out.splitlines(), captured.err


def store_unreadable_stage(manager, job):
    document = job.to_wire()
    document["currentStage"] = "WELDING"
    manager.save_job(document)


# =============================================================================
# list
# =============================================================================

class TestList:

    def test_lists_open_jobs(self, capsys, db_path, stored, open_job):
        code, out, _ = run(capsys, "--db", db_path, "list")

        assert code == EXIT_OK
        assert out[-1] == "1 job(s)"
        assert out[0].startswith(open_job.id)
        assert "CUTTING" in out[0]
        assert "batches=2" in out[0]

    def test_all_includes_completed(self, capsys, db_path, stored, closed_job):
        code, out, _ = run(capsys, "--db", db_path, "list", "--all")

        assert code == EXIT_OK
        assert out[-1] == "2 job(s)"
        assert any(line.startswith(closed_job.id) and "DONE" in line for line in out)

    def test_empty_store(self, capsys, db_path):
        code, out, _ = run(capsys, "--db", db_path, "list")

        assert code == EXIT_OK
        assert out == ["0 job(s)"]

    def test_unreadable_document_exits_4(self, capsys, db_path, stored, open_job):
        store_unreadable_stage(stored, open_job)

        code, out, err = run(capsys, "--db", db_path, "list")
        assert code == EXIT_SYSTEM_ERROR
        assert out == []
        assert err.startswith("ERROR:")

    def test_newer_schema_exits_4(self, capsys, db_path, stored):
        conn = sqlite3.connect(db_path)
        conn.execute("INSERT INTO schema_version (version, applied_at) VALUES (99, 'later')")
        conn.commit()
        conn.close()

        code, _, err = run(capsys, "--db", db_path, "list")
        assert code == EXIT_SYSTEM_ERROR
        assert "Cannot open job store" in err


# =============================================================================
# show
# =============================================================================

class TestShow:

    def test_prints_wire_document(self, capsys, db_path, stored, open_job):
        code, out, _ = run(capsys, "--db", db_path, "show", open_job.id)

        assert code == EXIT_OK
        assert json.loads("\n".join(out)) == open_job.to_wire()

    def test_missing_job_exits_1(self, capsys, db_path, stored):
        code, out, err = run(capsys, "--db", db_path, "show", "nope")

        assert code == EXIT_NOT_FOUND
        assert out == []
        assert "nope" in err


# =============================================================================
# history
# =============================================================================

class TestHistory:

    def test_prints_every_entry(self, capsys, db_path, stored, open_job):
        code, out, _ = run(capsys, "--db", db_path, "history", open_job.id)

        expected = len(open_job.history) + sum(len(b.history) for b in open_job.batches)
        assert code == EXIT_OK
        assert len(out) == expected

    def test_batch_filter(self, capsys, db_path, stored, open_job):
        """
        GIVEN: A job split into B1 and B2
        WHEN: history is asked for B2 only
        THEN: Only B2's CREATE entry is printed
        """
        code, out, _ = run(capsys, "--db", db_path, "history", open_job.id, "--batch", "B2")

        assert code == EXIT_OK
        assert len(out) == 1
        assert out[0].split()[1] == "B2"
        assert "CREATE" in out[0]

    def test_unknown_batch_exits_1(self, capsys, db_path, stored, open_job):
        code, _, _ = run(capsys, "--db", db_path, "history", open_job.id, "--batch", "B9")
        assert code == EXIT_NOT_FOUND

    def test_missing_job_exits_1(self, capsys, db_path, stored):
        code, _, err = run(capsys, "--db", db_path, "history", "nope")

        assert code == EXIT_NOT_FOUND
        assert "nope" in err


# =============================================================================
# timing
# =============================================================================

class TestTiming:

    def test_prints_stage_times(self, capsys, db_path, stored, open_job):
        code, out, _ = run(capsys, "--db", db_path, "timing", open_job.id)

        assert code == EXIT_OK
        assert out == [f"{'DESIGN':<15} 1m 30s"]

    def test_missing_job_exits_1(self, capsys, db_path, stored):
        code, _, _ = run(capsys, "--db", db_path, "timing", "nope")
        assert code == EXIT_NOT_FOUND

    def test_unreadable_document_exits_4(self, capsys, db_path, stored, open_job):
        store_unreadable_stage(stored, open_job)

        code, out, err = run(capsys, "--db", db_path, "timing", open_job.id)
        assert code == EXIT_SYSTEM_ERROR
        assert out == []
        assert open_job.id in err


def test_db_path_from_environment(capsys, monkeypatch, db_path, stored, open_job):
    monkeypatch.setenv("FABTRACK_DB_PATH", db_path)

    code, _, _ = run(capsys, "show", open_job.id)
    assert code == EXIT_OK
