"""
skillpath/services/answer_checkers.py
Answer correctness per question type

Each QuestionType maps to one checker in ANSWER_CHECKERS. Types without a
dedicated checker use case-insensitive string equality.
"""
import abc
import logging
import re
from typing import Dict, Optional, Tuple

from skillpath.orm.question import Question, QuestionType

logger = logging.getLogger(__name__)

NUMBER_WITH_UNITS = re.compile(r"^(-?\d*\.?\d+(?:e[-+]?\d+)?)\s*(.*)$", re.IGNORECASE)


class AnswerChecker(abc.ABC):
    """Decides whether a learner response is correct for a question."""

    @abc.abstractmethod
    def is_correct(self, question: Question, user_response: str) -> bool:
        raise NotImplementedError


class DefaultAnswerChecker(AnswerChecker):
    """Case-insensitive exact comparison. Whitespace is significant."""

    def is_correct(self, question: Question, user_response: str) -> bool:
        return user_response.lower() == (question.correct_answer or "").lower()


class McqAnswerChecker(AnswerChecker):
    """
    Multiple choice: the response must name one of the option keys.

    An unknown option is wrong even if it happens to equal the stored answer.
    """

    def is_correct(self, question: Question, user_response: str) -> bool:
        selected = user_response.strip().upper()
        correct = (question.correct_answer or "").strip().upper()

        if not question.options:
            logger.warning(f"[ANSWER CHECK] MCQ question {question.id} has no options defined")
            return selected == correct

        valid_options = {str(key).upper() for key in question.options.keys()}
        if selected not in valid_options:
            logger.warning(
                f"[ANSWER CHECK] Invalid MCQ response for question {question.id}: "
                f"'{user_response}'. Valid options: {sorted(valid_options)}"
            )
            return False

        return selected == correct


class TrueFalseAnswerChecker(AnswerChecker):
    TRUE_VALUES = frozenset({"true", "t", "yes", "y", "1"})
    FALSE_VALUES = frozenset({"false", "f", "no", "n", "0"})

    def is_correct(self, question: Question, user_response: str) -> bool:
        normalized = user_response.strip().lower()
        if normalized in self.TRUE_VALUES:
            answer = True
        elif normalized in self.FALSE_VALUES:
            answer = False
        else:
            logger.warning(
                f"[ANSWER CHECK] Invalid true/false response for question {question.id}: '{user_response}'"
            )
            return False

        expected = (question.correct_answer or "").strip().lower() in self.TRUE_VALUES
        return answer == expected


class NumericalAnswerChecker(AnswerChecker):
    """
    Numeric answers with optional units.

    Correct when within the absolute OR the relative tolerance. Tolerances
    and expected units come from options["numericalOptions"].
    """

    DEFAULT_ABSOLUTE_TOLERANCE = 0.001
    DEFAULT_RELATIVE_TOLERANCE = 0.01

    def is_correct(self, question: Question, user_response: str) -> bool:
        numerical_options = (question.options or {}).get("numericalOptions") or {}
        absolute_tolerance = numerical_options.get("absoluteTolerance") or self.DEFAULT_ABSOLUTE_TOLERANCE
        relative_tolerance = numerical_options.get("relativeTolerance") or self.DEFAULT_RELATIVE_TOLERANCE
        expected_units = numerical_options.get("units")

        correct = parse_numerical_answer(question.correct_answer or "")
        given = parse_numerical_answer(user_response)
        if correct is None or given is None:
            logger.warning(
                f"[ANSWER CHECK] Unparseable numerical answer for question {question.id}: '{user_response}'"
            )
            return False

        correct_value, _ = correct
        user_value, user_units = given

        if expected_units and user_units != expected_units:
            return False

        absolute_difference = abs(correct_value - user_value)
        if correct_value != 0:
            relative_difference = absolute_difference / abs(correct_value)
        else:
            relative_difference = absolute_difference

        return absolute_difference <= absolute_tolerance or relative_difference <= relative_tolerance


def parse_numerical_answer(answer: str) -> Optional[Tuple[float, Optional[str]]]:
    """Split "10.5 kg" into (10.5, "kg"). Returns None when no number leads the text."""
    match = NUMBER_WITH_UNITS.match(answer.strip())
    if not match:
        return None
    try:
        value = float(match.group(1))
    except ValueError:
        return None
    units = match.group(2).strip()
    return value, units or None


DEFAULT_CHECKER = DefaultAnswerChecker()

ANSWER_CHECKERS: Dict[QuestionType, AnswerChecker] = {
    QuestionType.mcq: McqAnswerChecker(),
    QuestionType.true_false: TrueFalseAnswerChecker(),
    QuestionType.numerical: NumericalAnswerChecker(),
}


def get_answer_checker(question_type: Optional[QuestionType]) -> AnswerChecker:
    return ANSWER_CHECKERS.get(question_type, DEFAULT_CHECKER)


def check_answer(question: Question, user_response: str) -> bool:
    """Correctness of user_response for question, using the type's checker."""
    checker = get_answer_checker(question.question_type)
    result = checker.is_correct(question, user_response)
    logger.debug(
        f"[ANSWER CHECK] question={question.id} type={question.question_type} "
        f"checker={type(checker).__name__} correct={result}"
    )
    return result
