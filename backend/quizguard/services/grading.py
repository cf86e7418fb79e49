"""
Attempt grading.

Functions:
- normalize_answer: trim + lowercase comparison form.
- normalize_boolean: map true/false spellings onto "true"/"false".
- AttemptGrader.grade: per-question correctness and aggregate score.
"""

import logging
from enum import Enum
from typing import Mapping, Optional, Sequence, List

from quizguard.config import settings
from quizguard.models.attempt import (
    Question, QuestionType, QuestionResult, GradeResult, MANUALLY_GRADED_TYPES
)
from quizguard.utils.exceptions import GradingInputError

logger = logging.getLogger(__name__)


_TRUE_SPELLINGS = {"true", "t", "yes", "y", "1"}
_FALSE_SPELLINGS = {"false", "f", "no", "n", "0"}


class EssayGradingPolicy(str, Enum):
    """How essay and reflection questions count toward the score"""
    EXCLUDE = "exclude"      # ungraded, left out of the denominator
    NON_EMPTY = "non_empty"  # counted, correct whenever something was written


def normalize_answer(value: Optional[str]) -> str:
    return (value or "").strip().lower()


def normalize_boolean(value: Optional[str]) -> str:
    text = normalize_answer(value)
    if text in _TRUE_SPELLINGS:
        return "true"
    if text in _FALSE_SPELLINGS:
        return "false"
    return text


def percentage_of(score: int, total: int) -> float:
    if total <= 0:
        return 0.0
    return round(score / total * 100, 1)


class AttemptGrader:
    """Grades a submission against a quiz's answer key. Stateless and deterministic."""

    def __init__(self, essay_policy: Optional[EssayGradingPolicy] = None):
        if essay_policy is None:
            essay_policy = EssayGradingPolicy(settings.ESSAY_GRADING_POLICY)
        self.essay_policy = essay_policy

    def grade(self, questions: Sequence[Question], answers: Mapping[int, str]) -> GradeResult:
        """
        Grade submitted answers.

        Args:
            questions: Answer key in quiz order
            answers: Submitted answer text keyed by question index

        Returns:
            GradeResult with score, denominator, percentage and per-question results
        """
        results: List[QuestionResult] = []
        score = 0
        total = 0

        for index, question in enumerate(questions):
            submitted = answers.get(index)
            result = self._grade_question(index, question, submitted)
            results.append(result)
            if result.graded:
                total += 1
                if result.correct:
                    score += 1

        return GradeResult(
            score=score,
            total_questions=total,
            percentage=percentage_of(score, total),
            results=tuple(results)
        )

    def _grade_question(self, index: int, question: Question, submitted: Optional[str]) -> QuestionResult:
        kind = question.type

        if kind in MANUALLY_GRADED_TYPES:
            if self.essay_policy is EssayGradingPolicy.EXCLUDE:
                return QuestionResult(index=index, type=kind, submitted=submitted, correct=False, graded=False)
            return QuestionResult(index=index, type=kind, submitted=submitted, correct=bool(normalize_answer(submitted)))

        try:
            correct = self._is_correct(index, question, submitted)
        except GradingInputError as e:
            logger.warning(f"Grading input error, marking incorrect: {e}")
            correct = False

        return QuestionResult(index=index, type=kind, submitted=submitted, correct=correct)

    @staticmethod
    def _is_correct(index: int, question: Question, submitted: Optional[str]) -> bool:
        kind = question.type
        key = normalize_answer(question.answer)

        if not key:
            raise GradingInputError(index, "answer key is empty")

        if kind == QuestionType.MULTIPLE_CHOICE and not question.choices:
            raise GradingInputError(index, "multiple_choice question has no choices")

        response = normalize_answer(submitted)
        if not response:
            return False

        if kind in (QuestionType.MULTIPLE_CHOICE, QuestionType.IDENTIFICATION):
            return response == key

        if kind == QuestionType.TRUE_OR_FALSE:
            return normalize_boolean(response) == normalize_boolean(key)

        if kind == QuestionType.ENUMERATION:
            accepted = {term.strip() for term in key.split(",") if term.strip()}
            return response in accepted

        raise GradingInputError(index, f"unknown question type {kind!r}")
