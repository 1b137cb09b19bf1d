"""
Integration test: EPA assignment pipeline end-to-end on a sqlite database.
Ensures:
- the personnel scenario inserts exactly one score and re-runs are no-ops
- ambiguous / unmatched names are queued for review and never written
- a store failure on one report does not stop the batch
- a unique-constraint race is retried once before the report is failed
"""
from __future__ import annotations

import json

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from apps.worker.pipeline import EpaAssignmentPipeline, run_epa_assignment
from apps.worker.review_sink import InMemoryReviewSink
from apps.worker.stores import SqlScoreSink
from packages.db.database import session_scope
from packages.db.models import EpaScore, Report
from packages.shared.models import ReviewReason
from tests.fixtures.epa_records import (
    PERSONNEL_NARRATIVE,
    add_participant,
    add_report,
    add_user,
    build_test_db,
    scores_by_participant,
    sqlite_config,
)


@pytest.fixture
def config(tmp_path):
    return sqlite_config(tmp_path, write=True)


@pytest.fixture
def factory(config):
    _engine, session_factory = build_test_db(config)
    return session_factory


class FailingScoreSink(SqlScoreSink):
    """Raises a driver error for one participant."""

    def __init__(self, failing_participant_id):
        self.failing_participant_id = failing_participant_id

    def upsert(self, session, participant_id, score, match_method, write, pending=None):
        if participant_id == self.failing_participant_id:
            raise OperationalError("UPDATE epa_scores", {}, Exception("database is locked"))
        return super().upsert(session, participant_id, score, match_method, write, pending=pending)


class RacingScoreSink(SqlScoreSink):
    """Another writer stores the same score first; the first insert collides with it."""

    def __init__(self, session_factory):
        self.session_factory = session_factory
        self.conflicts = 0

    def upsert(self, session, participant_id, score, match_method, write, pending=None):
        if not self.conflicts:
            self.conflicts += 1
            with session_scope(self.session_factory) as other:
                other.add(EpaScore(report_participant_id=participant_id, epa_score=score, match_method="identity"))
            raise IntegrityError("INSERT INTO epa_scores", {}, Exception("UNIQUE constraint failed"))
        return super().upsert(session, participant_id, score, match_method, write, pending=pending)


class ConflictingScoreSink(SqlScoreSink):
    """Every write for one participant hits a unique constraint."""

    def __init__(self, conflicting_participant_id):
        self.conflicting_participant_id = conflicting_participant_id
        self.attempts = 0

    def upsert(self, session, participant_id, score, match_method, write, pending=None):
        if participant_id == self.conflicting_participant_id:
            self.attempts += 1
            raise IntegrityError("INSERT INTO epa_scores", {}, Exception("UNIQUE constraint failed"))
        return super().upsert(session, participant_id, score, match_method, write, pending=pending)


class BrokenReviewSink:
    def write_batch(self, cases):
        raise OSError("disk full")


class TestPipelineE2E:
    def test_personnel_scenario_inserts_once(self, config, factory):
        add_report(factory, 1, PERSONNEL_NARRATIVE)
        jane = add_participant(factory, 1, "Jane Doe")
        add_participant(factory, 1, "Dr. John Roe", role="attending")
        sink = InMemoryReviewSink()

        summary = run_epa_assignment(config, review_sink=sink, session_factory=factory)

        assert summary.reports_scanned == 1
        assert summary.pairs_found == 1
        assert summary.inserted == 1
        assert summary.review_cases == 0
        assert scores_by_participant(factory) == {jane: (4, "identity")}

        again = run_epa_assignment(config, review_sink=sink, session_factory=factory)
        assert again.inserted == 0
        assert again.unchanged == 1
        assert scores_by_participant(factory) == {jane: (4, "identity")}

    def test_changed_score_updates(self, config, factory):
        add_report(factory, 1, "Jane Doe Trainee EPA: 2")
        jane = add_participant(factory, 1, "Jane Doe")
        run_epa_assignment(config, review_sink=InMemoryReviewSink(), session_factory=factory)

        with session_scope(factory) as session:
            session.get(Report, 1).content_text = "Jane Doe Trainee EPA: 5"

        summary = run_epa_assignment(config, review_sink=InMemoryReviewSink(), session_factory=factory)
        assert summary.updated == 1
        assert scores_by_participant(factory) == {jane: (5, "identity")}

    def test_matches_through_linked_user_name(self, config, factory):
        add_user(factory, 77, first="Jane", last="Doe")
        add_report(factory, 1, "Doe, Jane Trainee EPA: 3")
        jane = add_participant(factory, 1, "Resident 1", user_id=77)
        add_participant(factory, 1, "Resident 2")

        summary = run_epa_assignment(config, review_sink=InMemoryReviewSink(), session_factory=factory)
        assert summary.inserted == 1
        assert scores_by_participant(factory) == {jane: (3, "identity")}

    def test_ambiguous_name_is_reviewed_not_written(self, config, factory):
        add_report(factory, 1, "Doe Trainee EPA: 3")
        add_participant(factory, 1, "Jane Doe")
        add_participant(factory, 1, "John Doe")
        sink = InMemoryReviewSink()

        summary = run_epa_assignment(config, review_sink=sink, session_factory=factory)

        assert summary.ambiguous == 1
        assert summary.inserted == 0
        assert scores_by_participant(factory) == {}
        [case] = sink.cases
        assert case.reason == ReviewReason.AMBIGUOUS
        assert case.raw_name == "Doe"
        assert len(case.matches) == 2
        assert len(case.candidates) == 2

    def test_unmatched_name_is_reviewed(self, config, factory):
        add_report(factory, 1, "Procedural Personnel:\nMark Fox Trainee EPA: 2\n")
        add_participant(factory, 1, "Jane Doe")
        add_participant(factory, 1, "John Roe")
        sink = InMemoryReviewSink()

        summary = run_epa_assignment(config, review_sink=sink, session_factory=factory)

        assert summary.unmatched == 1
        [case] = sink.cases
        assert case.reason == ReviewReason.NO_MATCH
        assert case.matches == []
        assert "Mark Fox Trainee EPA: 2" in case.personnel_excerpt

    def test_sole_candidate_is_flagged(self, config, factory):
        add_report(factory, 1, "Jane Doe Trainee EPA: 2")
        only = add_participant(factory, 1, "Unknown Resident")

        summary = run_epa_assignment(config, review_sink=InMemoryReviewSink(), session_factory=factory)

        assert summary.inserted == 1
        assert summary.sole_candidate_matches == 1
        assert scores_by_participant(factory) == {only: (2, "sole_candidate")}

    def test_report_without_participants(self, config, factory):
        add_report(factory, 1, "Jane Doe Trainee EPA: 2")
        summary = run_epa_assignment(config, review_sink=InMemoryReviewSink(), session_factory=factory)
        assert summary.reports_without_participants == 1
        assert summary.review_cases == 0

    def test_reports_without_marker_are_not_scanned(self, config, factory):
        add_report(factory, 1, "EPA discussed with patient")
        add_report(factory, 2, "Jane Doe Trainee EPA: 9")
        add_report(factory, 3, None)
        summary = run_epa_assignment(config, review_sink=InMemoryReviewSink(), session_factory=factory)
        assert summary.reports_scanned == 0

    def test_preview_mode_writes_nothing(self, config, factory):
        add_report(factory, 1, PERSONNEL_NARRATIVE)
        add_participant(factory, 1, "Jane Doe")
        preview = config.model_copy(update={"write": False})

        summary = run_epa_assignment(preview, review_sink=InMemoryReviewSink(), session_factory=factory)

        assert summary.write is False
        assert summary.inserted == 1
        assert scores_by_participant(factory) == {}

    def test_store_failure_does_not_abort_batch(self, config, factory):
        add_report(factory, 1, "Jane Doe Trainee EPA: 3")
        failing = add_participant(factory, 1, "Jane Doe")
        add_report(factory, 2, "John Roe Trainee EPA: 4")
        john = add_participant(factory, 2, "John Roe")

        pipeline = EpaAssignmentPipeline(
            config,
            session_factory=factory,
            score_sink=FailingScoreSink(failing),
            review_sink=InMemoryReviewSink(),
        )
        summary = pipeline.run()

        assert summary.reports_scanned == 2
        assert summary.reports_failed == 1
        assert summary.inserted == 1
        assert scores_by_participant(factory) == {john: (4, "identity")}

    def test_unique_conflict_is_retried(self, config, factory):
        add_report(factory, 1, "Jane Doe Trainee EPA: 4")
        jane = add_participant(factory, 1, "Jane Doe")
        sink = RacingScoreSink(factory)

        pipeline = EpaAssignmentPipeline(
            config, session_factory=factory, score_sink=sink, review_sink=InMemoryReviewSink()
        )
        summary = pipeline.run()

        assert sink.conflicts == 1
        assert summary.reports_failed == 0
        assert summary.inserted == 0
        assert summary.unchanged == 1
        assert scores_by_participant(factory) == {jane: (4, "identity")}

    def test_persistent_conflict_fails_only_that_report(self, config, factory):
        add_report(factory, 1, "Jane Doe Trainee EPA: 3")
        conflicting = add_participant(factory, 1, "Jane Doe")
        add_report(factory, 2, "John Roe Trainee EPA: 4")
        john = add_participant(factory, 2, "John Roe")
        sink = ConflictingScoreSink(conflicting)

        pipeline = EpaAssignmentPipeline(
            config, session_factory=factory, score_sink=sink, review_sink=InMemoryReviewSink()
        )
        summary = pipeline.run()

        assert sink.attempts == 2
        assert summary.reports_scanned == 2
        assert summary.reports_failed == 1
        assert summary.inserted == 1
        assert scores_by_participant(factory) == {john: (4, "identity")}

    def test_preview_counts_repeated_mention_like_a_write(self, config, factory):
        add_report(factory, 1, "Jane Doe Trainee EPA: 4. Jane Doe Trainee EPA: 4")
        jane = add_participant(factory, 1, "Jane Doe")
        preview = config.model_copy(update={"write": False})

        previewed = run_epa_assignment(preview, review_sink=InMemoryReviewSink(), session_factory=factory)
        assert scores_by_participant(factory) == {}
        written = run_epa_assignment(config, review_sink=InMemoryReviewSink(), session_factory=factory)

        assert (previewed.inserted, previewed.updated, previewed.unchanged) == (1, 0, 1)
        assert (written.inserted, written.updated, written.unchanged) == (1, 0, 1)
        assert scores_by_participant(factory) == {jane: (4, "identity")}

    def test_limit_bounds_the_scan(self, config, factory):
        for rid in (1, 2, 3):
            add_report(factory, rid, "Jane Doe Trainee EPA: 3")
            add_participant(factory, rid, "Jane Doe")
        pipeline = EpaAssignmentPipeline(config, session_factory=factory, review_sink=InMemoryReviewSink())
        summary = pipeline.run(limit=2)
        assert summary.reports_scanned == 2
        assert len(scores_by_participant(factory)) == 2

    def test_worker_threads_preview(self, config, factory):
        for rid in (1, 2, 3, 4):
            add_report(factory, rid, f"Jane Doe Trainee EPA: {rid}")
            add_participant(factory, rid, "Jane Doe")
        threaded = config.model_copy(update={"write": False, "workers": 3})

        summary = run_epa_assignment(threaded, review_sink=InMemoryReviewSink(), session_factory=factory)

        assert summary.reports_scanned == 4
        assert summary.inserted == 4
        assert summary.reports_failed == 0


class TestReviewOutput:
    def test_json_review_file(self, config, factory):
        add_report(factory, 1, "Doe Trainee EPA: 3")
        add_participant(factory, 1, "Jane Doe")
        add_participant(factory, 1, "John Doe")

        summary = run_epa_assignment(config, session_factory=factory)

        assert summary.review_artifact == str(config.review_output_path)
        payload = json.loads(config.review_output_path.read_text(encoding="utf-8"))
        assert payload[0]["report_id"] == 1
        assert payload[0]["reason"] == "ambiguous"
        assert payload[0]["score"] == 3

    def test_empty_run_still_writes_file(self, config, factory):
        summary = run_epa_assignment(config, session_factory=factory)
        assert summary.review_cases == 0
        assert json.loads(config.review_output_path.read_text(encoding="utf-8")) == []

    def test_review_sink_failure_is_not_fatal(self, config, factory):
        add_report(factory, 1, "Doe Trainee EPA: 3")
        add_participant(factory, 1, "Jane Doe")
        add_participant(factory, 1, "John Doe")

        summary = run_epa_assignment(config, review_sink=BrokenReviewSink(), session_factory=factory)

        assert summary.review_write_failed is True
        assert summary.review_cases == 1
        assert summary.review_artifact is None
