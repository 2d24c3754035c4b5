from typing import Mapping

from .schemas import AnswerValue, AttemptResult, QuestionDef, QuestionOutcome, QuizDef


def _normalize(text: str) -> str:
    return text.strip().lower()


def _selected_ids(answer: AnswerValue) -> frozenset[str]:
    # a bare option id is a one-element selection
    if isinstance(answer, str):
        return frozenset([answer]) if answer else frozenset()
    return frozenset(str(a) for a in answer)


def _recorded(answer: object) -> AnswerValue | None:
    if answer is None or isinstance(answer, str):
        return answer
    if isinstance(answer, (list, tuple, set, frozenset)):
        return [str(a) for a in answer]
    return str(answer)


def is_malformed(question: QuestionDef) -> bool:
    """Questions that can never be answered correctly because their key is broken."""
    if question.is_choice:
        if not question.options:
            return True
        if any(not opt.text.strip() for opt in question.options):
            return True
        return not any(opt.is_correct for opt in question.options)
    return not (question.correct_answer or "").strip()


def find_malformed(quiz: QuizDef) -> list[str]:
    return [q.id for q in quiz.questions if is_malformed(q)]


def is_correct(question: QuestionDef, answer: AnswerValue | None) -> bool:
    if answer is None or is_malformed(question):
        return False

    if question.is_choice:
        if not isinstance(answer, (str, list, tuple, set, frozenset)):
            return False
        selected = _selected_ids(answer)
        correct = frozenset(opt.id for opt in question.options if opt.is_correct)
        return bool(selected) and selected == correct

    if not isinstance(answer, str):
        return False
    return _normalize(answer) == _normalize(question.correct_answer or "")


def score_percentage(correct_count: int, total_questions: int) -> int:
    """round(100 * correct / total), halves rounded up; 0 for an empty quiz."""
    if total_questions <= 0:
        return 0
    return (200 * correct_count + total_questions) // (2 * total_questions)


def grade_quiz(quiz: QuizDef, answers: Mapping[str, AnswerValue]) -> AttemptResult:
    outcomes: list[QuestionOutcome] = []
    correct_count = 0
    earned_points = 0
    total_points = 0

    for q in quiz.questions:
        answer = answers.get(q.id)
        ok = is_correct(q, answer)
        total_points += q.points
        if ok:
            correct_count += 1
            earned_points += q.points
        outcomes.append(QuestionOutcome(
            question_id=q.id,
            answer=_recorded(answer),
            correct=ok,
            points=q.points,
        ))

    total = len(quiz.questions)
    score = score_percentage(correct_count, total)
    return AttemptResult(
        quiz_id=quiz.id,
        score_percentage=score,
        passed=score >= quiz.passing_score_percentage,
        correct_count=correct_count,
        total_questions=total,
        earned_points=earned_points,
        total_points=total_points,
        outcomes=tuple(outcomes),
    )
