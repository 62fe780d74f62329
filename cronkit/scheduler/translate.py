"""
Translator interface — natural-language text to cron expression.

cronkit ships no rule set. An application plugs one in at manager
construction; its output is treated as untrusted and re-parsed before
any job is created from it.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class Translator(ABC):
    """
    Turns text like "every weekday at 9am" into "0 9 * * 1-5".

    Implementations raise TranslationError when the text is not
    recognised. They must never guess.
    """

    @abstractmethod
    def translate(self, text: str) -> str:
        ...
