"""Tiny terminal UI helpers (prompt_toolkit-based).

Interactive pickers used by the CLI when an option such as the payment type or
status is omitted. Kept apart from the ledger so they are easy to test with a
pipe input.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from prompt_toolkit import PromptSession
from prompt_toolkit.completion import WordCompleter
from prompt_toolkit.validation import ValidationError, Validator


class _OneOf(Validator):
    def __init__(self, allowed_lower: set[str], hint: str) -> None:
        self._allowed_lower = allowed_lower
        self._hint = hint

    def validate(self, document) -> None:
        if document.text.strip().lower() not in self._allowed_lower:
            raise ValidationError(message=self._hint)


def select_option(
    options: Sequence[str] | Iterable[str],
    *,
    default: str = "",
    message: str = "Choose (Enter to accept): ",
    session: PromptSession | None = None,
) -> str:
    """Prompt for one of ``options`` with completion; returns the canonical spelling.

    The default is pre-filled so Enter accepts it. Input is matched
    case-insensitively and anything outside ``options`` is refused inline.
    """

    words = list(options)
    if not words:
        raise ValueError("select_option() needs at least one option")
    canonical = {w.lower(): w for w in words}
    completer = WordCompleter(words, ignore_case=True, match_middle=True, sentence=True)
    validator = _OneOf(set(canonical), "Pick one of: " + ", ".join(words))

    if session is None:
        sess: PromptSession = PromptSession()
    else:
        sess = PromptSession(
            input=getattr(session, "input", None),
            output=getattr(session, "output", None),
        )

    value = sess.prompt(
        message,
        default=default if default.lower() in canonical else "",
        completer=completer,
        validator=validator,
        validate_while_typing=False,
    )
    return canonical[value.strip().lower()]


__all__ = ["select_option"]
