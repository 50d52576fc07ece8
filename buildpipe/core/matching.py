"""Declarative regex rule tables.

A rule pairs an ordered list of patterns with an effect (a category, a
manifest key, ...). The helpers below are the only evaluators; the tables
themselves stay plain data so each one can be tested on its own.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Generic, Iterable, List, Optional, Pattern, Tuple, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class PatternRule(Generic[T]):
    patterns: Tuple[Pattern[str], ...]
    effect: T

    def search(self, text: str) -> Optional[re.Match[str]]:
        for pattern in self.patterns:
            m = pattern.search(text)
            if m:
                return m
        return None

    def matches(self, text: str) -> bool:
        return self.search(text) is not None


def rule(effect: T, *patterns: str, flags: int = 0) -> PatternRule[T]:
    return PatternRule(patterns=tuple(re.compile(p, flags) for p in patterns), effect=effect)


def first_match(rules: Iterable[PatternRule[T]], text: str) -> Optional[PatternRule[T]]:
    for r in rules:
        if r.matches(text):
            return r
    return None


def all_matches(rules: Iterable[PatternRule[T]], text: str) -> List[PatternRule[T]]:
    return [r for r in rules if r.matches(text)]
