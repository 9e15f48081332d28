"""Term harvesting: text cleaning, source adapters and the de-duplicating aggregator."""
from __future__ import annotations

import re
from typing import Dict, Iterable, List, Optional

from .. import config
from ..models import Concept, Flashcard, GlossaryEntry, Material, Term, TermSource

PLACEHOLDER = "[...]"
_INFLECTION_SUFFIX = r"(en|et|ar|arna|ens|ets)?"
_REPEATED_PLACEHOLDERS = re.compile(r"\[\.\.\.\](?:\s*\[\.\.\.\])+")


def sanitize(value: Optional[str]) -> str:
    return (value or "").strip()


def is_non_empty(value: Optional[str]) -> bool:
    return bool(value and value.strip())


def _clean_examples(examples: Iterable[Optional[str]]) -> List[str]:
    cleaned = [sanitize(item) for item in examples]
    unique = list(dict.fromkeys(item for item in cleaned if item))
    return unique[: config.MAX_EXAMPLES]


def mask_term_in_definition(term: str, definition: str) -> str:
    """Replace occurrences of ``term`` inside ``definition`` with a placeholder.

    The full term is matched as whole words (with common Swedish inflection
    suffixes), then every word of a multi-word term longer than three
    characters. A definite ``-en``/``-et`` ending of the full term is kept so
    the sentence still reads naturally.
    """
    if not term or not definition:
        return definition

    words = term.lower().split()
    full_pattern = re.compile(
        r"\b" + r"\s+".join(re.escape(word) for word in words) + _INFLECTION_SUFFIX + r"\b",
        re.IGNORECASE,
    )

    def _replace_full(match: "re.Match[str]") -> str:
        suffix = (match.group(1) or "").lower()
        if "en" in suffix:
            return PLACEHOLDER + "en"
        if "et" in suffix:
            return PLACEHOLDER + "et"
        return PLACEHOLDER

    result = full_pattern.sub(_replace_full, definition)
    for word in words:
        if len(word) > 3:
            word_pattern = re.compile(r"\b" + re.escape(word) + _INFLECTION_SUFFIX + r"\b", re.IGNORECASE)
            result = word_pattern.sub(PLACEHOLDER, result)

    result = _REPEATED_PLACEHOLDERS.sub(PLACEHOLDER, result).strip()
    return result or definition


def _make_term(
    *,
    record_id: Optional[str],
    material_id: str,
    term: Optional[str],
    definition: Optional[str],
    examples: Iterable[Optional[str]],
    source: TermSource,
    language: str,
    mask: bool,
) -> Optional[Term]:
    clean_term = sanitize(term)
    clean_definition = sanitize(definition)
    if not clean_term or not clean_definition:
        return None
    if mask:
        clean_definition = mask_term_in_definition(clean_term, clean_definition)
    fields = dict(
        material_id=material_id,
        term=clean_term,
        definition=clean_definition,
        examples=_clean_examples(examples),
        source=source,
        language=language,
    )
    if record_id:
        fields["id"] = record_id
    return Term(**fields)


def from_concepts(
    concepts: Iterable[Concept],
    material_id: str,
    language: str,
    *,
    source: TermSource = "concept",
    mask: bool = True,
) -> List[Term]:
    terms: List[Term] = []
    for concept in concepts:
        item = _make_term(
            record_id=concept.id,
            material_id=material_id,
            term=concept.term,
            definition=concept.definition,
            examples=concept.examples,
            source=source,
            language=language,
            mask=mask,
        )
        if item is not None:
            terms.append(item)
    return terms


def from_flashcards(
    flashcards: Iterable[Flashcard], material_id: str, language: str, *, mask: bool = True
) -> List[Term]:
    terms: List[Term] = []
    for card in flashcards:
        if card.type != "term-definition":
            continue
        item = _make_term(
            record_id=card.id,
            material_id=material_id,
            term=card.front,
            definition=card.back,
            examples=[],
            source="flashcard",
            language=language,
            mask=mask,
        )
        if item is not None:
            terms.append(item)
    return terms


def from_glossary(
    entries: Iterable[GlossaryEntry], material_id: str, language: str, *, mask: bool = True
) -> List[Term]:
    terms: List[Term] = []
    for entry in entries:
        item = _make_term(
            record_id=entry.id,
            material_id=material_id,
            term=entry.term,
            definition=entry.definition,
            examples=[entry.example] if entry.example else [],
            source="glossary",
            language=language,
            mask=mask,
        )
        if item is not None:
            terms.append(item)
    return terms


def collect_material_terms(material: Material, language: str, *, mask: bool = True) -> List[Term]:
    """Run every adapter over one material and merge the results."""

    return aggregate(
        [
            *from_concepts(material.concepts, material.id, language, mask=mask),
            *from_flashcards(material.flashcards, material.id, language, mask=mask),
            *from_glossary(material.glossary, material.id, language, mask=mask),
        ]
    )


def aggregate(terms: Iterable[Term]) -> List[Term]:
    """Merge terms keyed by lower-cased text, keeping first-seen order.

    Colliding records keep the longer definition (the earlier one on a tie),
    the union of their examples capped at three, and ``generated`` provenance
    if either side was generated.
    """
    seen: Dict[str, Term] = {}
    for term in terms:
        key = term.term.lower()
        if not key:
            continue
        existing = seen.get(key)
        if existing is None:
            seen[key] = term
            continue

        definition = (
            existing.definition
            if len(existing.definition) >= len(term.definition)
            else term.definition
        )
        source = (
            "generated"
            if "generated" in (existing.source, term.source)
            else existing.source
        )
        seen[key] = existing.model_copy(
            update={
                "definition": definition,
                "examples": _clean_examples([*existing.examples, *term.examples]),
                "source": source,
            }
        )
    return list(seen.values())
