import threading
from datetime import timedelta

import pytest

from casegrader.core.errors import (
    ConcurrentSubmissionError,
    DuplicatePartError,
    MalformedPayloadError,
    NotFoundError,
    TimeViolationError,
)
from casegrader.core.policy import ResubmissionPolicy
from casegrader.grading.aggregator import SubmissionAggregator
from gradebook.memory import InMemoryGradebook
from tests.mocks.gradebook import T0, RacingGradebook, StaleGradebook

JOHN_DOE = {"subject_name": "john   doe", "icd_codes": ["B02", "A01"], "notes": "anything"}


def _aggregator(store, clock, **kwargs) -> SubmissionAggregator:
    return SubmissionAggregator(store, store, clock=clock, **kwargs)


def _stored(store, student_id="stu-1", assignment_id="module-1"):
    return store.load_submission(student_id, assignment_id)


def test_submit_parent_part(gradebook, clock) -> None:
    outcome = _aggregator(gradebook, clock).submit("stu-1", "case-1", [JOHN_DOE])

    submission = outcome.submission
    assert outcome.stored and outcome.version == 1
    assert outcome.graded == [None]
    assert (submission.total_correct, submission.total_wrong, submission.overall_progress) == (2, 0, 100)
    assert submission.submitted_at == T0
    document, version = _stored(gradebook, assignment_id="case-1")
    assert version == 1
    assert document["parts"][0]["values"]["notes"] == "anything"


def test_reject_policy_refuses_resubmission(gradebook, clock) -> None:
    aggregator = _aggregator(gradebook, clock)
    aggregator.submit("stu-1", "case-1", [JOHN_DOE])
    clock.advance(minutes=5)

    with pytest.raises(DuplicatePartError) as excinfo:
        aggregator.submit("stu-1", "case-1", [{"subject_name": "Someone Else"}])

    assert excinfo.value.part_ids == [None]
    assert "parent" in str(excinfo.value)
    document, version = _stored(gradebook, assignment_id="case-1")
    assert version == 1
    assert document["overall_progress"] == 100


def test_overwrite_policy_replaces_part_in_place(gradebook, clock) -> None:
    aggregator = _aggregator(gradebook, clock, resubmission=ResubmissionPolicy.OVERWRITE)
    aggregator.submit("stu-1", "case-1", [JOHN_DOE])
    clock.advance(minutes=5)

    outcome = aggregator.submit("stu-1", "case-1", [{"subject_name": "Jon Doe", "icd_codes": "A01,B02"}])

    submission = outcome.submission
    assert outcome.replaced == [None]
    assert len(submission.parts) == 1
    assert (submission.total_correct, submission.total_wrong, submission.overall_progress) == (1, 1, 50)
    assert submission.submitted_at == T0 + timedelta(minutes=5)


def test_sub_parts_accumulate_across_requests(gradebook, clock, parts) -> None:
    aggregator = _aggregator(gradebook, clock)
    aggregator.submit("stu-1", "module-1", [parts["s1"]])
    outcome = aggregator.submit("stu-1", "module-1", [parts["s2"]])

    submission = outcome.submission
    assert [part.part_id for part in submission.parts] == ["s1", "s2"]
    assert [part.progress for part in submission.parts] == [100, 50]
    assert (submission.total_correct, submission.total_wrong, submission.overall_progress) == (3, 1, 75)
    assert outcome.version == 2


def test_reject_names_every_colliding_part(gradebook, clock, parts) -> None:
    aggregator = _aggregator(gradebook, clock)
    aggregator.submit("stu-1", "module-1", [parts["s1"], parts["s2"]])

    with pytest.raises(DuplicatePartError) as excinfo:
        aggregator.submit("stu-1", "module-1", [parts["s1"], parts["s3"], parts["s2"]])

    assert excinfo.value.part_ids == ["s1", "s2"]
    document, _ = _stored(gradebook)
    assert [part["part_id"] for part in document["parts"]] == ["s1", "s2"]


def test_unknown_and_parent_parts_are_skipped(gradebook, clock, parts) -> None:
    outcome = _aggregator(gradebook, clock).submit(
        "stu-1",
        "module-1",
        [{"sub_assignment_id": "nope", "cpt_codes": ["1"]}, {"subject_name": "Jane"}, parts["s3"]],
    )

    assert outcome.graded == ["s3"]
    assert [(entry.part_id, entry.reason) for entry in outcome.skipped] == [
        ("nope", "unknown_part"),
        (None, "parent_not_gradable"),
    ]
    assert outcome.submission.parts[0].progress == 100


def test_duplicate_part_in_one_request_is_skipped(gradebook, clock, parts) -> None:
    second = dict(parts["s1"], cpt_codes=["00000"])
    outcome = _aggregator(gradebook, clock).submit("stu-1", "module-1", [parts["s1"], second])

    assert outcome.graded == ["s1"]
    assert [(entry.part_id, entry.reason) for entry in outcome.skipped] == [("s1", "duplicate_in_request")]
    assert outcome.submission.parts[0].progress == 100


def test_sub_id_sent_to_parent_assignment_is_unknown(gradebook, clock, parts) -> None:
    outcome = _aggregator(gradebook, clock).submit("stu-1", "case-1", [parts["s1"], JOHN_DOE])
    assert outcome.graded == [None]
    assert outcome.skipped[0].reason == "unknown_part"


def test_only_unknown_parts_store_nothing(gradebook, clock) -> None:
    outcome = _aggregator(gradebook, clock).submit("stu-1", "module-1", [{"sub_assignment_id": "nope"}])

    assert not outcome.stored
    assert outcome.skipped[0].reason == "unknown_part"
    assert _stored(gradebook) == (None, 0)


@pytest.mark.parametrize("payload", [{"sub_assignment_id": "s1"}, "s1", None, []])
def test_payload_must_be_a_non_empty_list(gradebook, clock, payload) -> None:
    with pytest.raises(MalformedPayloadError):
        _aggregator(gradebook, clock).submit("stu-1", "module-1", payload)
    assert _stored(gradebook) == (None, 0)


def test_malformed_parts_are_skipped_when_others_survive(gradebook, clock, parts) -> None:
    outcome = _aggregator(gradebook, clock).submit(
        "stu-1", "module-1", ["garbage", {"sub_assignment_id": "s2", "icd_codes": {"x": 1}}, parts["s1"]]
    )

    assert outcome.graded == ["s1"]
    assert [entry.reason for entry in outcome.skipped] == ["malformed", "malformed"]
    assert "part[1] (s2)" in outcome.skipped[1].detail


def test_all_parts_malformed_raises(gradebook, clock) -> None:
    with pytest.raises(MalformedPayloadError) as excinfo:
        _aggregator(gradebook, clock).submit("stu-1", "module-1", ["garbage", {"answers": "nope"}])
    assert len(excinfo.value.issues) == 2


def test_missing_assignment(gradebook, clock) -> None:
    with pytest.raises(NotFoundError):
        _aggregator(gradebook, clock).submit("stu-1", "missing", [JOHN_DOE])


def _timed_store(**fields) -> InMemoryGradebook:
    store = InMemoryGradebook()
    store.put_assignment({"id": "timed", "definition": {"key": {"subject_name": "John Doe"}}, **fields})
    return store


def test_window_is_enforced_inclusively(clock) -> None:
    store = _timed_store(window_start=(T0 + timedelta(hours=1)).isoformat(), window_end=(T0 + timedelta(hours=2)).isoformat())
    aggregator = _aggregator(store, clock)

    with pytest.raises(TimeViolationError) as excinfo:
        aggregator.submit("stu-1", "timed", [{"subject_name": "John Doe"}])
    assert "not opened" in str(excinfo.value)
    assert _stored(store, assignment_id="timed") == (None, 0)

    clock.advance(hours=2)
    assert aggregator.submit("stu-1", "timed", [{"subject_name": "John Doe"}]).stored

    clock.advance(seconds=1)
    with pytest.raises(TimeViolationError):
        aggregator.submit("stu-2", "timed", [{"subject_name": "John Doe"}])


def test_first_submit_stamps_the_deadline(clock) -> None:
    store = _timed_store(time_limit_minutes=30)
    aggregator = _aggregator(store, clock, resubmission=ResubmissionPolicy.OVERWRITE)

    first = aggregator.submit("stu-1", "timed", [{"subject_name": "Jane"}])
    assert first.submission.started_at == T0
    assert first.submission.must_submit_by == T0 + timedelta(minutes=30)

    clock.advance(minutes=30)
    second = aggregator.submit("stu-1", "timed", [{"subject_name": "John Doe"}])
    assert second.submission.must_submit_by == T0 + timedelta(minutes=30)
    assert second.submission.overall_progress == 100

    clock.advance(seconds=1)
    with pytest.raises(TimeViolationError) as excinfo:
        aggregator.submit("stu-1", "timed", [{"subject_name": "Jane"}])
    assert excinfo.value.deadline == T0 + timedelta(minutes=30)
    document, _ = _stored(store, assignment_id="timed")
    assert document["overall_progress"] == 100


def test_start_attempt_is_idempotent(clock) -> None:
    store = _timed_store(time_limit_minutes=45)
    aggregator = _aggregator(store, clock)

    started = aggregator.start_attempt("stu-1", "timed")
    assert started.stored and started.submission.must_submit_by == T0 + timedelta(minutes=45)

    clock.advance(minutes=10)
    again = aggregator.start_attempt("stu-1", "timed")
    assert not again.stored
    assert again.submission.started_at == T0

    clock.advance(minutes=20)
    outcome = aggregator.submit("stu-1", "timed", [{"subject_name": "John Doe"}])
    assert outcome.submission.must_submit_by == T0 + timedelta(minutes=45)
    assert outcome.submission.submitted_at == T0 + timedelta(minutes=30)


def test_start_attempt_without_time_limit_stores_nothing(gradebook, clock) -> None:
    outcome = _aggregator(gradebook, clock).start_attempt("stu-1", "case-1")
    assert not outcome.stored
    assert outcome.submission.must_submit_by is None
    assert _stored(gradebook, assignment_id="case-1") == (None, 0)


def test_lost_race_reloads_and_merges(module_doc, clock, parts) -> None:
    competitor = {
        "student_id": "stu-1",
        "assignment_id": "module-1",
        "parts": [{"part_id": "s2", "mode": "fields", "correct": 2, "wrong": 0, "progress": 100}],
    }
    store = RacingGradebook(competitor)
    store.put_assignment(module_doc)

    outcome = _aggregator(store, clock).submit("stu-1", "module-1", [parts["s1"]])

    assert store.races == 1
    assert outcome.version == 2
    assert [part.part_id for part in outcome.submission.parts] == ["s2", "s1"]
    assert outcome.submission.total_correct == 4


def test_lost_race_against_same_part_is_rejected(module_doc, clock, parts) -> None:
    competitor = {"student_id": "stu-1", "assignment_id": "module-1", "parts": [{"part_id": "s1", "correct": 1}]}
    store = RacingGradebook(competitor)
    store.put_assignment(module_doc)

    with pytest.raises(DuplicatePartError):
        _aggregator(store, clock).submit("stu-1", "module-1", [parts["s1"]])


def test_retries_are_bounded(module_doc, clock, parts) -> None:
    store = StaleGradebook()
    store.put_assignment(module_doc)

    with pytest.raises(ConcurrentSubmissionError) as excinfo:
        _aggregator(store, clock, max_write_retries=3).submit("stu-1", "module-1", [parts["s1"]])
    assert excinfo.value.attempts == 3


def test_concurrent_submits_for_different_parts_all_land(gradebook, clock, parts) -> None:
    aggregator = _aggregator(gradebook, clock, max_write_retries=10)
    barrier = threading.Barrier(3)
    errors = []

    def worker(part):
        barrier.wait()
        try:
            aggregator.submit("stu-1", "module-1", [part])
        except Exception as exc:  # pragma: no cover - surfaced by the assertion below
            errors.append(exc)

    threads = [threading.Thread(target=worker, args=(parts[key],)) for key in ("s1", "s2", "s3")]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    document, version = _stored(gradebook)
    assert sorted(part["part_id"] for part in document["parts"]) == ["s1", "s2", "s3"]
    assert version == 3
    assert (document["total_correct"], document["total_wrong"]) == (4, 1)


def test_regrade_overwrite_uses_current_definition(gradebook, module_doc, clock, parts) -> None:
    aggregator = _aggregator(gradebook, clock, resubmission=ResubmissionPolicy.OVERWRITE)
    aggregator.submit("stu-1", "module-1", [parts["s1"], parts["s2"]])

    module_doc["sub_assignments"][1]["definition"]["key"]["drg_value"] = "203"
    module_doc["sub_assignments"] = module_doc["sub_assignments"][1:]
    gradebook.put_assignment(module_doc)

    outcome = aggregator.regrade("stu-1", "module-1")

    assert outcome.graded == ["s2"]
    assert [(entry.part_id, entry.reason) for entry in outcome.skipped] == [("s1", "unknown_part")]
    submission = outcome.submission
    assert [part.part_id for part in submission.parts] == ["s1", "s2"]
    assert submission.find_part("s2").progress == 100
    assert (submission.total_correct, submission.total_wrong) == (4, 0)
    assert outcome.version == 2


def test_regrade_reject_only_recomputes_totals(gradebook, module_doc, clock, parts) -> None:
    aggregator = _aggregator(gradebook, clock)
    aggregator.submit("stu-1", "module-1", [parts["s2"]])
    document, version = _stored(gradebook)
    document["total_correct"] = 99
    gradebook.save_submission(document, expected_version=version)

    module_doc["sub_assignments"][1]["definition"]["key"]["drg_value"] = "203"
    gradebook.put_assignment(module_doc)
    outcome = aggregator.regrade("stu-1", "module-1")

    assert outcome.stored
    assert outcome.graded == []
    assert outcome.submission.find_part("s2").progress == 50
    assert outcome.submission.total_correct == 1

    unchanged = aggregator.regrade("stu-1", "module-1")
    assert not unchanged.stored


def test_regrade_requires_submission(gradebook, clock) -> None:
    with pytest.raises(NotFoundError) as excinfo:
        _aggregator(gradebook, clock).regrade("stu-1", "module-1")
    assert excinfo.value.what == "submission"
