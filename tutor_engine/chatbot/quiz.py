"""
Quiz contract

A generated reply is a quiz iff it carries the four option markers A) B) C) D).
The learner answers with a single letter. The correct option must come from
explicit data: an "Answer: X - explanation" line in the generated text (removed
before display) or a structured answer key supplied by the generator. Without
either, the quiz is ungraded.
"""

import re
from typing import Dict, List, Optional, Tuple

from ..schema.core_schema import ActiveQuiz, LearnerProfile, QuizAnswerKey, QuizOutcome


OPTION_LETTERS = ("A", "B", "C", "D")

CORRECT_POINTS = 15
PARTICIPATION_POINTS = 5
MASTERY_GAIN = 0.1
MASTERY_LOSS = 0.05

_OPTION_MARKER = re.compile(r"(?<![A-Za-z])([ABCD])\)")
_ANSWER_TOKEN = re.compile(r"^[A-Da-d]$")
_ANSWER_LINE = re.compile(
    r"^\s*\**\s*(?:correct\s+)?answer\s*\**\s*[:\-]\s*\**\s*\(?([A-Da-d])(?![A-Za-z])\)?\**"
    r"(?:\s*[-:.]?\s*(?P<explanation>.*?))?\s*$",
    re.IGNORECASE | re.MULTILINE,
)


def is_quiz(text: str) -> bool:
    """True when all four distinct option markers appear."""
    found = {m.group(1) for m in _OPTION_MARKER.finditer(text or "")}
    return found == set(OPTION_LETTERS)


def parse_answer(text: str) -> Optional[int]:
    """'b' / ' B ' -> 1; anything else -> None."""
    token = (text or "").strip()
    if not _ANSWER_TOKEN.match(token):
        return None
    return OPTION_LETTERS.index(token.upper())


def letter_to_index(letter: str) -> Optional[int]:
    letter = (letter or "").strip().upper()
    return OPTION_LETTERS.index(letter) if letter in OPTION_LETTERS else None


def split_answer_key(text: str) -> Tuple[str, Optional[QuizAnswerKey]]:
    """
    Remove an explicit answer-key line from a generated quiz.

    Text that is not a quiz once the line is removed comes back unchanged, so
    an ordinary reply opening with "Answer: A ..." keeps its content.

    Returns:
        (visible_text, answer_key or None)
    """
    match = _ANSWER_LINE.search(text or "")
    if not match:
        return text, None
    visible = (text[: match.start()] + text[match.end():]).strip()
    if not is_quiz(visible):
        return text, None
    key = QuizAnswerKey(
        correct_letter=match.group(1).upper(),
        explanation=(match.group("explanation") or "").strip(),
    )
    return visible, key


def parse_quiz(
    quiz_id: str,
    text: str,
    answer_key: Optional[QuizAnswerKey] = None,
    concept_id: str = "general",
) -> ActiveQuiz:
    """Build an ActiveQuiz from the visible quiz text and an optional answer key."""
    markers = list(_OPTION_MARKER.finditer(text))
    first_marker = {}
    for m in markers:
        first_marker.setdefault(m.group(1), m)

    ordered = [first_marker[letter] for letter in OPTION_LETTERS if letter in first_marker]
    question = text[: ordered[0].start()].strip() if ordered else text.strip()

    options: List[str] = []
    for i, marker in enumerate(ordered):
        end = ordered[i + 1].start() if i + 1 < len(ordered) else len(text)
        option_text = text[marker.end():end].strip()
        # options written inline on one line keep only their own text
        options.append(option_text.splitlines()[0].strip() if option_text else "")

    correct_index = letter_to_index(answer_key.correct_letter) if answer_key else None
    return ActiveQuiz(
        id=quiz_id,
        question=question,
        options=options,
        correct_index=correct_index,
        explanation=answer_key.explanation if answer_key else "",
        concept_id=concept_id,
    )


def score_answer(quiz: ActiveQuiz, answer_index: int) -> QuizOutcome:
    """Grade one answer against the stored correct index."""
    if quiz.correct_index is None:
        return QuizOutcome(
            quiz_id=quiz.id,
            concept_id=quiz.concept_id,
            answer_index=answer_index,
            points_awarded=PARTICIPATION_POINTS,
        )
    is_correct = answer_index == quiz.correct_index
    return QuizOutcome(
        quiz_id=quiz.id,
        concept_id=quiz.concept_id,
        answer_index=answer_index,
        correct_index=quiz.correct_index,
        is_correct=is_correct,
        points_awarded=CORRECT_POINTS if is_correct else PARTICIPATION_POINTS,
    )


def apply_outcome(profile: LearnerProfile, outcome: QuizOutcome) -> LearnerProfile:
    """Fold a quiz outcome into the learner aggregates (returns an updated copy)."""
    mastery: Dict[str, float] = dict(profile.concept_mastery)
    attempts: Dict[str, int] = dict(profile.concept_attempts)
    concept = outcome.concept_id

    attempts[concept] = attempts.get(concept, 0) + 1
    current = profile.mastery_for(concept)
    if outcome.is_correct is True:
        mastery[concept] = min(1.0, round(current + MASTERY_GAIN, 4))
    elif outcome.is_correct is False:
        mastery[concept] = max(0.0, round(current - MASTERY_LOSS, 4))

    return profile.model_copy(
        update={
            "total_points": profile.total_points + outcome.points_awarded,
            "quizzes_taken": profile.quizzes_taken + 1,
            "correct_answers": profile.correct_answers + (1 if outcome.is_correct else 0),
            "concept_mastery": mastery,
            "concept_attempts": attempts,
        }
    )


def result_text(quiz: ActiveQuiz, outcome: QuizOutcome) -> str:
    """Learner-facing feedback for a graded (or ungraded) answer."""
    chosen = OPTION_LETTERS[outcome.answer_index]
    if outcome.is_correct is None:
        return (
            f"Thanks! You answered {chosen}. I don't have an answer key for this one, "
            f"so it isn't graded. +{outcome.points_awarded} points for participating."
        )
    correct = OPTION_LETTERS[quiz.correct_index]
    if outcome.is_correct:
        text = f"Correct! {chosen} is the right answer. +{outcome.points_awarded} points."
    else:
        text = (
            f"Not quite. You chose {chosen}, but the correct answer is {correct}. "
            f"+{outcome.points_awarded} points for trying."
        )
    if quiz.explanation:
        text += f"\n{quiz.explanation}"
    return text
