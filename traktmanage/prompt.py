"""Interactive prompt capability used for credentials, PINs and confirmations."""

from __future__ import annotations

from collections import deque
from typing import Iterable, Protocol

import click

from .exceptions import UserCancelled

AFFIRMATIVE_ANSWERS = frozenset({"y", "yes"})


class Prompt(Protocol):
    def ask(self, question: str) -> str:
        """Ask ``question`` and return the raw answer."""


class ConsolePrompt:
    """Prompt on the controlling terminal."""

    def ask(self, question: str) -> str:
        try:
            answer = click.prompt(
                question.rstrip(), default="", show_default=False, prompt_suffix=" "
            )
        except click.Abort as exc:
            raise UserCancelled("Prompt aborted") from exc
        return str(answer)


class ScriptedPrompt:
    """Replay canned answers, recording every question asked."""

    def __init__(self, answers: Iterable[str] = ()):
        self._answers = deque(answers)
        self.questions: list[str] = []

    def ask(self, question: str) -> str:
        self.questions.append(question)
        if not self._answers:
            raise UserCancelled(f"No scripted answer for {question!r}")
        return self._answers.popleft()


def confirm(prompt: Prompt, question: str) -> bool:
    """Return True only for an explicit yes; anything else declines."""

    try:
        answer = prompt.ask(question)
    except UserCancelled:
        return False
    return answer.strip().lower() in AFFIRMATIVE_ANSWERS
