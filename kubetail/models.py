"""Data types shared across the tail pipeline."""

import re
from dataclasses import dataclass
from enum import Enum


@dataclass(frozen=True)
class TargetRecord:
    name: str
    namespace: str
    kind: str = "Pod"
    url: str = ""


@dataclass(frozen=True)
class Chunk:
    source: str    # pod name the bytes came from
    data: bytes


class FilterKind(Enum):
    INCLUDE = "grep"
    EXCLUDE = "vgrep"


@dataclass(frozen=True)
class FilterRule:
    kind: FilterKind
    patterns: tuple[str, ...]

    @classmethod
    def from_patterns(cls, kind: FilterKind, patterns) -> "FilterRule":
        """Build a rule, dropping empty and duplicate patterns but keeping order."""
        unique = dict.fromkeys(p for p in patterns if p)
        return cls(kind=kind, patterns=tuple(unique))

    @property
    def expression(self) -> str:
        return "|".join(self.patterns)

    def compile(self) -> re.Pattern:
        return re.compile(self.expression)
