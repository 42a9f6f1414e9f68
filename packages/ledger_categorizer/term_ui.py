"""Human answer source for clarifying questions (prompt_toolkit-based).

The categorization engine only depends on the :class:`AnswerSource`
capability; this module provides the interactive terminal implementation and
the shared interpretation of a raw reply (option number or free text).
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from typing import Any, Protocol

from prompt_toolkit import PromptSession
from prompt_toolkit.completion import WordCompleter
from prompt_toolkit.validation import ValidationError, Validator


class AnswerSource(Protocol):
    """Supplies a human answer to one clarifying question."""

    def ask(
        self,
        question: str,
        options: Sequence[str],
        *,
        context: Mapping[str, Any] | None = None,
    ) -> str: ...


def interpret_answer(raw: str, options: Sequence[str]) -> str:
    """Map a raw reply to the answer sent back to the oracle.

    A whole number in ``1..len(options)`` selects that option (1-based).
    Anything else, including out-of-range numbers, is taken as free text.
    """

    text = (raw or "").strip()
    if text.isdigit():
        n = int(text)
        if 1 <= n <= len(options):
            return options[n - 1]
    return text


def format_transaction(context: Mapping[str, Any]) -> list[str]:
    """Render transaction fields as ``key: value`` lines, skipping empties."""

    lines: list[str] = []
    for k, v in context.items():
        if v is None or (isinstance(v, str) and not v.strip()):
            continue
        if isinstance(v, Mapping):
            continue
        lines.append(f"  {k}: {v}")
    return lines


class _NonEmpty(Validator):
    def validate(self, document) -> None:
        if not document.text.strip():
            raise ValidationError(message="Enter an option number or type an answer.")


class PromptToolkitAnswerSource:
    """Ask clarifying questions on the terminal.

    Prints the transaction details, the question and its numbered options,
    then reads one reply. Option labels complete with Tab. The reply is
    returned verbatim (trimmed); callers map it with :func:`interpret_answer`.
    """

    def __init__(
        self,
        *,
        session: PromptSession | None = None,
        echo: Callable[[str], None] = print,
        message: str = "Your answer (number or text): ",
    ) -> None:
        self._session = session
        self._echo = echo
        self._message = message

    def ask(
        self,
        question: str,
        options: Sequence[str],
        *,
        context: Mapping[str, Any] | None = None,
    ) -> str:
        opts = list(options)
        if context:
            self._echo("")
            self._echo("Transaction:")
            for line in format_transaction(context):
                self._echo(line)
        self._echo("")
        self._echo(question)
        for i, opt in enumerate(opts, start=1):
            self._echo(f"  {i}. {opt}")

        sess: PromptSession = self._session if self._session is not None else PromptSession()
        completer = WordCompleter(opts, ignore_case=True, match_middle=True, sentence=True)
        raw = sess.prompt(
            self._message,
            completer=completer,
            validator=_NonEmpty(),
            validate_while_typing=False,
        )
        return raw.strip()


__all__ = [
    "AnswerSource",
    "PromptToolkitAnswerSource",
    "interpret_answer",
    "format_transaction",
]
