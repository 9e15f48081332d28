"""Concept generation capability used when local material has too few terms."""
from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Sequence

import requests

from .. import config
from ..models import Concept, Material

_GEMINI_SAFETY_SETTINGS = [
    {"category": "HARM_CATEGORY_HARASSMENT", "threshold": "BLOCK_NONE"},
    {"category": "HARM_CATEGORY_HATE_SPEECH", "threshold": "BLOCK_NONE"},
    {"category": "HARM_CATEGORY_SEXUALLY_EXPLICIT", "threshold": "BLOCK_NONE"},
    {"category": "HARM_CATEGORY_DANGEROUS_CONTENT", "threshold": "BLOCK_NONE"},
]


class GenerationFailedError(Exception):
    """Raised when the concept generation capability cannot deliver concepts."""


@dataclass
class ConceptGenerationRequest:
    content: str
    count: int
    grade: int
    language: str
    topic_hint: Optional[str] = None


ConceptGenerator = Callable[[ConceptGenerationRequest], List[Concept]]


def language_label(language: str) -> str:
    return config.LANGUAGE_LABELS.get(language, language)


def build_generation_content(materials: Sequence[Material]) -> str:
    """Concatenate material titles and bodies, truncated to ``MAX_GENERATION_CHARS``."""

    if not materials:
        return ""
    combined = "\n\n".join(f"{material.title}\n{material.content}" for material in materials)
    return combined[: config.MAX_GENERATION_CHARS]


def build_generation_input(materials: Sequence[Material], topic_hint: str, language: str) -> str:
    topic = topic_hint.strip()
    background = build_generation_content(materials)
    sections = [
        f"Tema/fokus: {topic}." if topic else None,
        f"Språk: {language_label(language)}.",
        f"Bakgrundsmaterial:\n{background}"
        if background
        else "Skapa en fristående begreppslista baserat på temat och årskursen.",
    ]
    return "\n\n".join(section for section in sections if section)


# --- Gemini response parsing ---


def _extract_code_fence_content(text: str) -> Optional[str]:
    match = re.search(r"```(?:json)?\s*([\s\S]+?)```", text, flags=re.IGNORECASE)
    if match:
        return match.group(1).strip()
    return None


def _enumerate_json_candidates(raw: str) -> Iterable[str]:
    """Yield plausible JSON substrings from a raw model response."""

    trimmed = raw.strip()
    if trimmed:
        yield trimmed

    fenced = _extract_code_fence_content(trimmed)
    if fenced:
        yield fenced

    source = fenced or trimmed
    for opener, closer in (("{", "}"), ("[", "]")):
        start = source.find(opener)
        end = source.rfind(closer)
        if start != -1 and end > start:
            yield source[start : end + 1]


def _remove_trailing_commas(candidate: str) -> str:
    """Drop commas that directly precede ``}`` or ``]``, leaving string values untouched."""

    kept: List[str] = []
    in_string = False
    escaped = False
    for index, char in enumerate(candidate):
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
        elif char == '"':
            in_string = True
        elif char == ",":
            rest = candidate[index + 1 :].lstrip()
            if rest[:1] in ("}", "]"):
                continue
        kept.append(char)
    return "".join(kept)


def parse_model_json(raw: str) -> object:
    """Parse model output into JSON, repairing code fences and trailing commas."""

    seen: set[str] = set()
    for candidate in _enumerate_json_candidates(raw):
        if candidate in seen:
            continue
        seen.add(candidate)
        for attempt in (candidate, _remove_trailing_commas(candidate)):
            try:
                return json.loads(attempt)
            except json.JSONDecodeError:
                continue
    snippet = raw.strip().replace("\n", " ")
    snippet = snippet[:180] + ("…" if len(snippet) > 180 else "")
    raise ValueError(f"Model output is not valid JSON: {snippet}")


def concepts_from_payload(payload: object) -> List[Concept]:
    """Read ``{"concepts": [...]}`` (or a bare list) into Concept records."""

    if isinstance(payload, dict):
        payload = payload.get("concepts")
    if not isinstance(payload, list):
        raise GenerationFailedError("Generation response did not contain a concept list.")

    concepts: List[Concept] = []
    for item in payload:
        if not isinstance(item, dict):
            continue
        examples = item.get("examples") or []
        if isinstance(examples, str):
            examples = [examples]
        concepts.append(
            Concept(
                term=str(item.get("term") or ""),
                definition=str(item.get("definition") or ""),
                examples=[str(example) for example in examples if example],
            )
        )
    return concepts


class GeminiConceptGenerator:
    """Generate key concepts with the Gemini ``generateContent`` REST endpoint."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[int] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._api_key = api_key or config.GEMINI_API_KEY
        self._model = model or config.GEMINI_MODEL
        self._timeout = timeout or config.GENERATION_TIMEOUT
        self._http = session or requests.Session()

    def _build_prompt(self, request: ConceptGenerationRequest) -> str:
        focus = f"Focus on the topic: {request.topic_hint}.\n" if request.topic_hint else ""
        return (
            "You create vocabulary drills for school students.\n"
            f"Extract exactly {request.count} key concepts suitable for grade {request.grade}.\n"
            f"{focus}"
            f"Write every term, definition and example in {language_label(request.language)} "
            f"(language code '{request.language}').\n"
            "Definitions must be one or two sentences and must not contain the term itself.\n"
            'Answer with JSON only: {"concepts": [{"term": "...", "definition": "...", "examples": ["..."]}]}\n\n'
            f"{request.content}"
        )

    def __call__(self, request: ConceptGenerationRequest) -> List[Concept]:
        if not self._api_key:
            raise GenerationFailedError("GEMINI_API_KEY is not configured.")

        url = (
            "https://generativelanguage.googleapis.com/v1beta/models/"
            f"{self._model}:generateContent?key={self._api_key}"
        )
        payload = {
            "contents": [{"role": "user", "parts": [{"text": self._build_prompt(request)}]}],
            "generationConfig": {
                "temperature": 0.35,
                "topP": 0.9,
                "topK": 32,
                "maxOutputTokens": 4096,
                "responseMimeType": "application/json",
            },
            "safetySettings": _GEMINI_SAFETY_SETTINGS,
        }

        logging.info("Requesting %d concepts from model '%s'", request.count, self._model)
        try:
            response = self._http.post(url, json=payload, timeout=self._timeout)
        except requests.RequestException as exc:
            raise GenerationFailedError(f"Concept generation request failed: {exc}") from exc

        if response.status_code != 200:
            raise GenerationFailedError(
                f"Concept generation returned HTTP {response.status_code}: {response.text[:200]}"
            )

        try:
            result = response.json()
        except ValueError as exc:
            raise GenerationFailedError("Concept generation returned a non-JSON body.") from exc
        prompt_feedback = result.get("promptFeedback") or {}
        if prompt_feedback.get("blockReason"):
            raise GenerationFailedError(f"Concept generation was blocked: {prompt_feedback['blockReason']}")

        for candidate in result.get("candidates", []):
            content = candidate.get("content") or {}
            for part in content.get("parts", []):
                if "text" not in part:
                    continue
                try:
                    parsed = parse_model_json(part["text"])
                except ValueError as exc:
                    raise GenerationFailedError(str(exc)) from exc
                return concepts_from_payload(parsed)
        raise GenerationFailedError("Concept generation returned no text.")
