from __future__ import annotations

import concurrent.futures as _fut
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from .constants import MAX_DUPLICATE_SUMMARIES
from .hashutil import fingerprint
from .members import DedupGroup, Member, UniqueMember


@dataclass
class DedupResult:
    uniques: List[UniqueMember]
    duplicate_summaries: List[str] = field(default_factory=list)


def _fingerprints(members: Sequence[Member], workers: Optional[int]) -> List[str]:
    if (workers is not None and workers <= 1) or len(members) < 2:
        return [fingerprint(m.content) for m in members]
    with _fut.ThreadPoolExecutor(max_workers=workers) as ex:
        return list(ex.map(lambda m: fingerprint(m.content), members))


def group_members(members: Sequence[Member], *, workers: Optional[int] = None) -> List[DedupGroup]:
    """Group members by content fingerprint, keeping first-seen group order.

    Fingerprints may be computed concurrently; ``ex.map`` returns them in input
    order so grouping stays deterministic.
    """
    digests = _fingerprints(members, workers)
    by_digest: Dict[str, DedupGroup] = {}
    for member, digest in zip(members, digests):
        group = by_digest.get(digest)
        if group is None:
            group = by_digest[digest] = DedupGroup(digest)
        group.members.append(member)
    return list(by_digest.values())


def summarize(groups: Sequence[DedupGroup], limit: int = MAX_DUPLICATE_SUMMARIES) -> List[str]:
    lines = [f"{len(g.members)} duplicates of {g.members[0].name}" for g in groups if len(g.members) > 1]
    return lines[:limit]


def deduplicate(
    members: Sequence[Member],
    *,
    enabled: bool = True,
    workers: Optional[int] = None,
    summary_limit: int = MAX_DUPLICATE_SUMMARIES,
) -> DedupResult:
    """Collapse byte-identical members into one stored record each.

    When ``enabled`` is False this is an identity transform: every member
    becomes its own UniqueMember and no summaries are produced.
    """
    if not enabled:
        return DedupResult([UniqueMember.single(m) for m in members])
    groups = group_members(members, workers=workers)
    uniques = []
    for g in groups:
        first = g.members[0]
        uniques.append(UniqueMember(first.name, first.content, [m.name for m in g.members]))
    return DedupResult(uniques, summarize(groups, summary_limit))
