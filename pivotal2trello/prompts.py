"""Numbered-menu prompts for the interactive parts of an import."""

from __future__ import annotations

from collections.abc import Mapping
from typing import TypeVar

K = TypeVar("K")


class Prompter:
    """Ask the operator to pick from numbered choices on stdin/stdout"""

    def choose(self, question: str, choices: Mapping[K, str]) -> K:
        """Show ``choices`` as a numbered menu and return the chosen key

        Re-asks until a listed number is entered.

        Example:
            >>> prompter.choose("Which board?", {"b1": "Roadmap", "b2": "Support"})
            Which board?
              1. Roadmap
              2. Support
            Please select an option: 2
            'b2'
        """
        if not choices:
            raise ValueError(f"No choices available for: {question}")

        keys = list(choices)
        print(f"\n{question}")
        for number, key in enumerate(keys, 1):
            print(f"  {number}. {choices[key]}")

        while True:
            answer = input("Please select an option: ").strip()
            if answer.isdigit() and 1 <= int(answer) <= len(keys):
                return keys[int(answer) - 1]
            print(f"Please enter a number between 1 and {len(keys)}.")

    def confirm(self, question: str) -> bool:
        """Ask a yes/no question; anything but y/yes counts as no"""
        answer = input(f"{question} [y/N]: ").strip().lower()
        return answer in ("y", "yes")
