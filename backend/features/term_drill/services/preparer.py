"""Game content preparation: resolve materials, harvest terms, fall back to generation."""
from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from .. import config
from ..models import GameContentPreparation, GameScopeMode, GameTerm, Material, Term
from .distractors import MistakeBank, build_distractors, prioritize
from .generation import (
    ConceptGenerationRequest,
    ConceptGenerator,
    GenerationFailedError,
    build_generation_input,
)
from .terms import aggregate, collect_material_terms, from_concepts, sanitize


class PreparationError(Exception):
    """User-correctable failure while preparing game content."""

    code = "preparation_failed"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NoMaterialSelectedError(PreparationError):
    code = "no_material_selected"


class MaterialNotFoundError(PreparationError):
    code = "material_not_found"


class NoMaterialsSelectedError(PreparationError):
    code = "no_materials_selected"


class TopicHintRequiredError(PreparationError):
    code = "topic_hint_required"


class InsufficientContentError(PreparationError):
    code = "insufficient_content"


@dataclass
class PreparationRequest:
    scope: GameScopeMode = "single-material"
    material_ids: List[str] = field(default_factory=list)
    include_all_materials: bool = False
    language: str = config.DEFAULT_LANGUAGE
    min_terms: Optional[int] = None
    max_distractors: Optional[int] = None
    topic_hint: str = ""
    grade: int = config.DEFAULT_GRADE
    mask_definitions: bool = True


@dataclass(frozen=True)
class PreparationProfile:
    """Per-game defaults for the shared preparation pipeline."""

    game: str
    min_terms: int
    max_distractors: int
    min_generated_concepts: int
    require_topic_for_generated: bool = True


SNAKE_PROFILE = PreparationProfile(
    game="snake",
    min_terms=config.DEFAULT_MIN_TERMS,
    max_distractors=config.DEFAULT_MAX_DISTRACTORS,
    min_generated_concepts=config.MIN_GENERATED_CONCEPTS,
)
WHACK_PROFILE = PreparationProfile(
    game="whack",
    min_terms=5,
    max_distractors=6,
    min_generated_concepts=15,
)


def _provenance(terms: Sequence[Term]) -> str:
    generated = sum(1 for term in terms if term.source == "generated")
    if generated == 0:
        return "existing"
    if generated == len(terms):
        return "generated"
    return "mixed"


class ContentPreparer:
    """Turns study materials into an ordered, distractor-enriched term list.

    Every collaborator is injected: the material list, the per-material
    mistake bank and the concept generation callable.
    """

    def __init__(
        self,
        materials: Sequence[Material],
        mistake_bank: Optional[MistakeBank] = None,
        generate_concepts: Optional[ConceptGenerator] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._materials = list(materials)
        self._mistake_bank = mistake_bank or {}
        self._generate_concepts = generate_concepts
        self._rng = rng or random.Random()

    def prepare_snake_content(self, request: PreparationRequest) -> GameContentPreparation:
        return self._prepare(request, SNAKE_PROFILE)

    def prepare_whack_content(self, request: PreparationRequest) -> GameContentPreparation:
        return self._prepare(request, WHACK_PROFILE)

    def prepare(self, game: str, request: PreparationRequest) -> GameContentPreparation:
        if game == "whack":
            return self.prepare_whack_content(request)
        return self.prepare_snake_content(request)

    def _resolve_materials(self, request: PreparationRequest) -> List[Material]:
        if request.scope == "single-material":
            target_id = request.material_ids[0] if request.material_ids else ""
            if not target_id:
                raise NoMaterialSelectedError("Välj ett material innan du startar spelet.")
            for material in self._materials:
                if material.id == target_id:
                    return [material]
            raise MaterialNotFoundError("Materialet kunde inte hittas.")

        if request.include_all_materials or not request.material_ids:
            wanted = {material.id for material in self._materials}
        else:
            wanted = set(request.material_ids)
        resolved = [material for material in self._materials if material.id in wanted]

        if request.scope == "multi-material" and not resolved:
            raise NoMaterialsSelectedError("Välj minst ett material för att spela med flera källor.")
        return resolved

    def _generate_terms(
        self,
        request: PreparationRequest,
        materials: Sequence[Material],
        count: int,
    ) -> List[Term]:
        if self._generate_concepts is None:
            raise GenerationFailedError("No concept generation capability is configured.")

        topic = request.topic_hint.strip()
        generation_request = ConceptGenerationRequest(
            content=build_generation_input(materials, topic, request.language),
            count=count,
            grade=request.grade,
            language=request.language,
            topic_hint=topic or None,
        )
        try:
            concepts = self._generate_concepts(generation_request)
        except GenerationFailedError:
            logging.warning("Concept generation failed for %d material(s)", len(materials), exc_info=True)
            raise
        except Exception as exc:
            logging.error("Concept generation raised an unexpected error: %s", exc, exc_info=True)
            raise GenerationFailedError(f"Concept generation failed: {exc}") from exc

        material_id = materials[0].id if materials else config.GENERATED_MATERIAL_ID
        return from_concepts(
            concepts,
            material_id,
            request.language,
            source="generated",
            mask=request.mask_definitions,
        )

    def _prepare(self, request: PreparationRequest, profile: PreparationProfile) -> GameContentPreparation:
        min_terms = request.min_terms if request.min_terms is not None else profile.min_terms
        max_distractors = (
            request.max_distractors if request.max_distractors is not None else profile.max_distractors
        )
        generated_mode = request.scope == "generated"

        if (
            generated_mode
            and profile.require_topic_for_generated
            and len(request.topic_hint.strip()) < config.MIN_TOPIC_HINT_LENGTH
        ):
            raise TopicHintRequiredError("Skriv vad du vill öva på innan du skapar ett nytt paket.")

        materials = self._resolve_materials(request)

        local_terms: List[Term] = []
        if not generated_mode:
            for material in materials:
                local_terms.extend(
                    collect_material_terms(material, request.language, mask=request.mask_definitions)
                )
        terms = aggregate(local_terms)
        source = "generated" if generated_mode else "existing"

        if generated_mode or len(terms) < min_terms or not terms:
            generated_terms = self._generate_terms(
                request, materials, max(min_terms, profile.min_generated_concepts)
            )
            if generated_mode:
                terms = aggregate(generated_terms)
            else:
                terms = aggregate([*terms, *generated_terms])
                source = _provenance(terms)

        if len(terms) < config.MIN_PLAYABLE_TERMS:
            raise InsufficientContentError(
                "För få begrepp för att starta spelet. Lägg till fler eller generera nytt."
            )

        enriched = [
            GameTerm(
                **term.model_dump(),
                distractors=build_distractors(term, terms, max_distractors, self._rng),
            )
            for term in terms
        ]
        consulted_ids = [material.id for material in materials]
        enriched = prioritize(enriched, consulted_ids, self._mistake_bank)

        material_ids = consulted_ids or list(request.material_ids) or [config.GENERATED_MATERIAL_ID]
        logging.info(
            "Prepared %d %s terms (scope=%s, source=%s, materials=%d)",
            len(enriched),
            profile.game,
            request.scope,
            source,
            len(consulted_ids),
        )
        return GameContentPreparation(
            terms=enriched,
            language=request.language,
            source=source,
            needs_review=source != "existing",
            material_ids=material_ids,
        )


def confirm_review(
    preparation: GameContentPreparation,
    edited_terms: Optional[Sequence[Term]] = None,
    max_distractors: int = config.DEFAULT_MAX_DISTRACTORS,
    rng: Optional[random.Random] = None,
) -> GameContentPreparation:
    """Accept (optionally edited) generated content so a game may start."""

    if edited_terms is None:
        return preparation.model_copy(update={"needs_review": False})

    cleaned: List[Term] = []
    for item in edited_terms:
        term = sanitize(item.term)
        definition = sanitize(item.definition)
        if not term or not definition:
            continue
        examples = [sanitize(example) for example in item.examples]
        cleaned.append(
            Term(
                id=item.id,
                material_id=item.material_id,
                term=term,
                definition=definition,
                examples=[example for example in examples if example][: config.MAX_REVIEW_EXAMPLES],
                source=item.source,
                language=item.language,
            )
        )
    terms = aggregate(cleaned)
    if len(terms) < config.MIN_PLAYABLE_TERMS:
        raise InsufficientContentError("Behåll minst tre begrepp med definition för att kunna spela.")

    rng = rng or random.Random()
    enriched = [
        GameTerm(**term.model_dump(), distractors=build_distractors(term, terms, max_distractors, rng))
        for term in terms
    ]
    return preparation.model_copy(update={"terms": enriched, "needs_review": False})
