from typing import Sequence

from .schemas import AnswerValue


class AnswerLedger:
    """
    In-memory answers for one quiz session, plus the navigation cursor.

    Values are stored exactly as given; shape is only checked when grading.
    A retake gets a new ledger, this one is never reset.
    """

    def __init__(self, question_ids: Sequence[str]):
        self._question_ids = tuple(question_ids)
        self._known = frozenset(self._question_ids)
        self._answers: dict[str, AnswerValue] = {}
        self._index = 0

    # --- answers

    def set_answer(self, question_id: str, value: AnswerValue) -> None:
        if question_id not in self._known:
            raise KeyError(question_id)
        self._answers[question_id] = value

    def get_answer(self, question_id: str) -> AnswerValue | None:
        return self._answers.get(question_id)

    def snapshot(self) -> dict[str, AnswerValue]:
        return dict(self._answers)

    @property
    def answered_count(self) -> int:
        return len(self._answers)

    # --- navigation

    @property
    def total(self) -> int:
        return len(self._question_ids)

    @property
    def index(self) -> int:
        return self._index

    @property
    def current_question_id(self) -> str | None:
        if not self._question_ids:
            return None
        return self._question_ids[self._index]

    @property
    def is_last(self) -> bool:
        return self._index >= self.total - 1

    def go_to(self, index: int) -> int:
        self._index = max(0, min(index, self.total - 1)) if self.total else 0
        return self._index

    def next(self) -> bool:
        before = self._index
        return self.go_to(before + 1) != before

    def previous(self) -> bool:
        before = self._index
        return self.go_to(before - 1) != before
