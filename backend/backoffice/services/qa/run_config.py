"""Test run configuration and question planning."""

from enum import Enum

from pydantic import BaseModel, Field, field_validator

from backoffice.core.config import settings


class QuestionCategory(str, Enum):
    """Categories a generated question can test."""

    RETRIEVAL = "retrieval"
    ACCURACY = "accuracy"
    CITATION = "citation"
    HALLUCINATION = "hallucination"
    OUT_OF_SCOPE = "out_of_scope"
    NO_ANSWER = "no_answer"
    CONSISTENCY = "consistency"
    MULTILINGUAL = "multilingual"

    @property
    def label(self) -> str:
        return CATEGORY_LABELS[self]


CATEGORY_LABELS: dict[QuestionCategory, str] = {
    QuestionCategory.RETRIEVAL: "Retrieval",
    QuestionCategory.ACCURACY: "Accuracy",
    QuestionCategory.CITATION: "Citation",
    QuestionCategory.HALLUCINATION: "Hallucination",
    QuestionCategory.OUT_OF_SCOPE: "Out of scope",
    QuestionCategory.NO_ANSWER: "No answer",
    QuestionCategory.CONSISTENCY: "Consistency",
    QuestionCategory.MULTILINGUAL: "Multilingual",
}

# Share of questions per category, in percent
DEFAULT_CATEGORY_DISTRIBUTION: dict[QuestionCategory, int] = {
    QuestionCategory.RETRIEVAL: 25,
    QuestionCategory.ACCURACY: 20,
    QuestionCategory.CITATION: 15,
    QuestionCategory.HALLUCINATION: 15,
    QuestionCategory.OUT_OF_SCOPE: 10,
    QuestionCategory.NO_ANSWER: 5,
    QuestionCategory.CONSISTENCY: 5,
    QuestionCategory.MULTILINGUAL: 5,
}


class Strictness(str, Enum):
    STRICT = "strict"
    MODERATE = "moderate"
    LENIENT = "lenient"


class TestRunConfig(BaseModel):
    """Configuration stored on a test run."""

    __test__ = False

    min_questions: int = Field(default_factory=lambda: settings.QA_DEFAULT_MIN_QUESTIONS, ge=1)
    questions_per_document: int = Field(
        default_factory=lambda: settings.QA_DEFAULT_QUESTIONS_PER_DOCUMENT, ge=0
    )
    categories: list[QuestionCategory] = Field(
        default_factory=lambda: list(DEFAULT_CATEGORY_DISTRIBUTION)
    )
    languages: list[str] = Field(default_factory=lambda: ["nl"])
    strictness: Strictness = Strictness.STRICT

    @field_validator("categories")
    @classmethod
    def categories_not_empty(cls, v: list[QuestionCategory]) -> list[QuestionCategory]:
        if not v:
            raise ValueError("At least one category is required")
        # Drop duplicates, keep order
        return list(dict.fromkeys(v))

    @field_validator("languages")
    @classmethod
    def languages_not_empty(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError("At least one language is required")
        return v


def calculate_total_questions(config: TestRunConfig, document_count: int) -> int:
    """Base question count plus a fixed number per processed document."""
    return config.min_questions + document_count * config.questions_per_document


def calculate_category_distribution(
    total_questions: int, categories: list[QuestionCategory]
) -> dict[QuestionCategory, int]:
    """Split ``total_questions`` over ``categories`` by their default weights.

    Counts are rounded per category; the last category takes whatever is
    left so the counts always sum to ``total_questions``.
    """
    active = [c for c in categories if DEFAULT_CATEGORY_DISTRIBUTION.get(c, 0) > 0]
    if not active:
        return {}

    weight_sum = sum(DEFAULT_CATEGORY_DISTRIBUTION[c] for c in active)
    distribution: dict[QuestionCategory, int] = {}
    assigned = 0
    for index, category in enumerate(active):
        if index == len(active) - 1:
            distribution[category] = total_questions - assigned
        else:
            share = round(total_questions * DEFAULT_CATEGORY_DISTRIBUTION[category] / weight_sum)
            # Never hand out more than remains
            share = min(share, total_questions - assigned)
            distribution[category] = share
            assigned += share
    return distribution
