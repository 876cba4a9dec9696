from __future__ import annotations

from dataclasses import dataclass, field
from typing import List


@dataclass
class Member:
    name: str
    content: bytes


@dataclass
class DedupGroup:
    fingerprint: str
    members: List[Member] = field(default_factory=list)


@dataclass
class UniqueMember:
    """One stored content record plus every name that shares its bytes.

    ``alias_names[0]`` is always ``primary_name``.
    """

    primary_name: str
    content: bytes
    alias_names: List[str] = field(default_factory=list)

    def __post_init__(self):
        if not self.alias_names:
            self.alias_names = [self.primary_name]
        elif self.alias_names[0] != self.primary_name:
            raise ValueError("alias_names must start with primary_name")

    @property
    def duplicates(self) -> List[str]:
        return self.alias_names[1:]

    @classmethod
    def single(cls, member: Member) -> "UniqueMember":
        return cls(member.name, member.content, [member.name])
