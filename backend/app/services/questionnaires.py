"""Versioned standard questionnaires attached to every physician profile.

Facilities receive the same answers with every application, so the
question ids are stable; bump `version` (and the id suffix) when wording
changes materially.
"""

from dataclasses import dataclass, field
from typing import Literal

QuestionType = Literal["yes-no", "text", "multiple-choice", "date"]


@dataclass(frozen=True)
class Question:
    id: str
    text: str
    type: QuestionType
    required: bool
    requires_details: bool = False
    options: tuple[str, ...] = ()


@dataclass(frozen=True)
class Questionnaire:
    id: str
    name: str
    version: str
    questions: tuple[Question, ...] = field(default_factory=tuple)


FACILITY_QUESTIONNAIRE = Questionnaire(
    id="facility-standard-v1",
    name="Facility Standard Questionnaire",
    version="1.0",
    questions=(
        Question(
            id="malpractice-history",
            text="Have you ever had a malpractice claim or settlement?",
            type="yes-no", required=True, requires_details=True,
        ),
        Question(
            id="license-discipline",
            text="Has any medical license ever been suspended, revoked, or subject to disciplinary action?",
            type="yes-no", required=True, requires_details=True,
        ),
        Question(
            id="hospital-privileges",
            text="Have you ever been denied hospital privileges or had privileges suspended or revoked?",
            type="yes-no", required=True, requires_details=True,
        ),
        Question(
            id="dea-action",
            text="Has your DEA registration ever been suspended, revoked, or subject to disciplinary action?",
            type="yes-no", required=True, requires_details=True,
        ),
        Question(
            id="criminal-history",
            text="Have you ever been convicted of a felony or misdemeanor (excluding minor traffic violations)?",
            type="yes-no", required=True, requires_details=True,
        ),
        Question(
            id="health-limitations",
            text="Do you have any physical or mental health conditions that would limit your ability to perform clinical duties?",
            type="yes-no", required=True, requires_details=True,
        ),
        Question(
            id="peer-review",
            text="Have you ever been subject to peer review action resulting in restriction of privileges?",
            type="yes-no", required=True, requires_details=True,
        ),
    ),
)

INSURANCE_QUESTIONNAIRE = Questionnaire(
    id="insurance-standard-v1",
    name="Insurance Standard Questionnaire",
    version="1.0",
    questions=(
        Question(
            id="current-coverage",
            text="Do you currently have malpractice insurance coverage?",
            type="yes-no", required=True,
        ),
        Question(
            id="coverage-type",
            text="What type of malpractice coverage do you have?",
            type="multiple-choice", required=True,
            options=("Claims-Made", "Occurrence", "Tail Coverage", "No Current Coverage", "Other"),
        ),
        Question(
            id="coverage-limits",
            text="What are your current coverage limits?",
            type="multiple-choice", required=True,
            options=("$1M / $3M", "$2M / $4M", "$3M / $5M", "Other", "Not Applicable"),
        ),
        Question(
            id="carrier-name",
            text="Current insurance carrier name",
            type="text", required=False,
        ),
        Question(
            id="policy-expiration",
            text="Policy expiration date",
            type="date", required=False,
        ),
        Question(
            id="claims-history",
            text="Number of malpractice claims in the past 10 years",
            type="multiple-choice", required=True,
            options=("0", "1", "2", "3", "4 or more"),
        ),
        Question(
            id="tail-coverage-needed",
            text="Will you need tail coverage for assignments?",
            type="yes-no", required=True,
        ),
    ),
)

# Keyed by the field name in the questionnaires section
QUESTIONNAIRES: dict[str, Questionnaire] = {
    "facility_questionnaire": FACILITY_QUESTIONNAIRE,
    "insurance_questionnaire": INSURANCE_QUESTIONNAIRE,
}


def catalog() -> list[dict]:
    """Serializable view of every questionnaire, for the client to render."""
    return [
        {
            "key": key,
            "id": q.id,
            "name": q.name,
            "version": q.version,
            "questions": [
                {
                    "id": question.id,
                    "text": question.text,
                    "type": question.type,
                    "required": question.required,
                    "requires_details": question.requires_details,
                    "options": list(question.options),
                }
                for question in q.questions
            ],
        }
        for key, q in QUESTIONNAIRES.items()
    ]
