"""Distractor sampling and mistake-weighted ordering of prepared terms."""
from __future__ import annotations

import random
from typing import Dict, List, Mapping, Optional, Sequence, TypeVar

from ..models import MistakeEntry, Term

T = TypeVar("T")
TermT = TypeVar("TermT", bound=Term)

MistakeBank = Mapping[str, Mapping[str, MistakeEntry]]


def shuffle(items: Sequence[T], rng: Optional[random.Random] = None) -> List[T]:
    """Return a Fisher-Yates shuffled copy of ``items``."""

    rng = rng or random
    result = list(items)
    for i in range(len(result) - 1, 0, -1):
        j = rng.randint(0, i)
        result[i], result[j] = result[j], result[i]
    return result


def build_distractors(
    term: Term,
    all_terms: Sequence[Term],
    max_count: int,
    rng: Optional[random.Random] = None,
) -> List[str]:
    """Sample wrong answers for ``term`` from the other terms in the pool.

    At least two are returned whenever two alternatives exist, never more than
    ``max(2, max_count)`` and never more than the pool holds.
    """
    own_key = term.term.lower()
    pool: Dict[str, str] = {}
    for item in all_terms:
        key = item.term.lower()
        if key != own_key and key not in pool:
            pool[key] = item.term
    if not pool:
        return []

    desired = min(max(2, max_count), len(pool))
    return shuffle(list(pool.values()), rng)[:desired]


def round_distractors(
    term: Term,
    prepared: Sequence[str],
    all_terms: Sequence[Term],
    count: int,
    rng: Optional[random.Random] = None,
) -> List[str]:
    """Pick ``count`` wrong labels for one round.

    The term's prepared distractors are used first; other terms in the game
    top the set up when the difficulty tier asks for more than were prepared.
    """
    own_key = term.term.lower()
    preferred: Dict[str, str] = {}
    for label in prepared:
        key = label.lower()
        if key != own_key and key not in preferred:
            preferred[key] = label
    fallback: Dict[str, str] = {}
    for item in all_terms:
        key = item.term.lower()
        if key != own_key and key not in preferred and key not in fallback:
            fallback[key] = item.term

    ordered = shuffle(list(preferred.values()), rng) + shuffle(list(fallback.values()), rng)
    return ordered[: max(0, count)]


def build_mistake_weights(mistake_bank: MistakeBank, material_ids: Sequence[str]) -> Dict[str, int]:
    """Sum miss counts per lower-cased term across the given materials."""

    weights: Dict[str, int] = {}
    for material_id in material_ids:
        entries = mistake_bank.get(material_id)
        if not entries:
            continue
        for entry in entries.values():
            key = entry.term.lower()
            weights[key] = weights.get(key, 0) + entry.miss_count
    return weights


def prioritize(terms: Sequence[TermT], material_ids: Sequence[str], mistake_bank: MistakeBank) -> List[TermT]:
    """Order terms by descending historical miss count (stable)."""

    weights = build_mistake_weights(mistake_bank, material_ids)
    if not weights:
        return list(terms)
    return sorted(terms, key=lambda item: weights.get(item.term.lower(), 0), reverse=True)
