from __future__ import annotations

from typing import Any, Dict

import pytest

from casegrader.service.engine import GradingService
from gradebook.memory import InMemoryGradebook
from tests.mocks.gradebook import FakeClock


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def parent_doc() -> Dict[str, Any]:
    return {
        "id": "case-1",
        "name": "Intake case",
        "category": " coding101 ",
        "definition": {
            "key": {
                "subject_name": "John Doe",
                "icd_codes": ["A01", "B02"],
                "notes": "",
            }
        },
    }


@pytest.fixture
def module_doc() -> Dict[str, Any]:
    return {
        "id": "module-1",
        "name": "Outpatient module",
        "category": "CODING101",
        "sub_assignments": [
            {"id": "s1", "name": "Office visit", "definition": {"key": {"cpt_codes": ["99213"], "modifiers": ["25"]}}},
            {"id": "s2", "name": "Asthma", "definition": {"key": {"icd_codes": ["J45.909"], "drg_value": "202"}}},
            {
                "id": "s3",
                "name": "Guidelines",
                "definition": {
                    "questions": [
                        {"question_text": "Which code set covers diagnoses?", "answer": "ICD-10-CM"},
                        {"question_text": "", "answer": "ignored"},
                    ]
                },
            },
        ],
    }


@pytest.fixture
def gradebook(parent_doc: Dict[str, Any], module_doc: Dict[str, Any]) -> InMemoryGradebook:
    store = InMemoryGradebook()
    store.put_assignment(parent_doc)
    store.put_assignment(module_doc)
    return store


@pytest.fixture
def service(gradebook: InMemoryGradebook, clock: FakeClock) -> GradingService:
    return GradingService(gradebook, gradebook, clock=clock)


S1_PART = {"sub_assignment_id": "s1", "cpt_codes": "99213", "modifiers": ["25"]}
S2_PART = {"sub_assignment_id": "s2", "icd_codes": ["j45.909"], "drg_value": "203"}
S3_PART = {
    "sub_assignment_id": "s3",
    "answers": [{"question_text": "which code set  covers diagnoses?", "answer": "icd-10-cm"}],
}


@pytest.fixture
def parts() -> Dict[str, Dict[str, Any]]:
    return {"s1": dict(S1_PART), "s2": dict(S2_PART), "s3": dict(S3_PART)}
