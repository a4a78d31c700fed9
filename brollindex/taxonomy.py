"""Project taxonomy: the vocabulary used to prompt classification and tag clips."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from brollindex.types import Segment

if TYPE_CHECKING:
    from brollindex.project import ProjectStore

logger = logging.getLogger(__name__)

DEFAULT_TAXONOMY_PATH = Path(__file__).parent / "data" / "default_taxonomy.json"

_KNOWN_KEYS = {
    "shotTypes", "equipment", "products", "techniques",
    "subjectDescriptors", "minimumBrollScore", "promptContext",
}


@dataclass
class Taxonomy:
    """Editable per-project vocabulary.

    List fields only ever grow through learning; ``minimum_broll_score`` is
    user-set and ``None`` means "use the run default".
    """

    shot_types: list[str] = field(default_factory=list)
    equipment: list[str] = field(default_factory=list)
    products: list[str] = field(default_factory=list)
    techniques: list[str] = field(default_factory=list)
    subject_descriptors: list[str] = field(default_factory=list)
    minimum_broll_score: float | None = None
    prompt_context: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "shotTypes": list(self.shot_types),
            "equipment": list(self.equipment),
            "products": list(self.products),
            "techniques": list(self.techniques),
            "subjectDescriptors": list(self.subject_descriptors),
        }
        if self.minimum_broll_score is not None:
            data["minimumBrollScore"] = self.minimum_broll_score
        if self.prompt_context is not None:
            data["promptContext"] = self.prompt_context
        data.update(self.extra)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Taxonomy:
        return cls(
            shot_types=list(data.get("shotTypes") or []),
            equipment=list(data.get("equipment") or []),
            products=list(data.get("products") or []),
            techniques=list(data.get("techniques") or []),
            subject_descriptors=list(data.get("subjectDescriptors") or []),
            minimum_broll_score=data.get("minimumBrollScore"),
            prompt_context=data.get("promptContext"),
            extra={k: v for k, v in data.items() if k not in _KNOWN_KEYS},
        )


def merge_terms(existing: list[str], discovered: list[str]) -> int:
    """Append terms from *discovered* missing from *existing* (case-insensitive).

    Mutates *existing* in place, keeping first-appearance order. Returns the
    number of terms added.
    """
    seen = {t.lower() for t in existing}
    added = 0
    for term in discovered:
        if not term or term.lower() in seen:
            continue
        existing.append(term)
        seen.add(term.lower())
        added += 1
    return added


def learn_terms(taxonomy: Taxonomy, segments: list[Segment]) -> dict[str, int]:
    """Harvest novel tag terms from *segments* into *taxonomy*.

    Returns:
        Number of terms added per taxonomy field.
    """
    added = {"equipment": 0, "products": 0, "techniques": 0, "subjectDescriptors": 0}
    for seg in segments:
        added["equipment"] += merge_terms(taxonomy.equipment, seg.equipment)
        added["products"] += merge_terms(taxonomy.products, seg.products)
        added["techniques"] += merge_terms(taxonomy.techniques, seg.technique)
        added["subjectDescriptors"] += merge_terms(taxonomy.subject_descriptors, seg.subject_descriptors)
    return added


def load_default_taxonomy() -> Taxonomy:
    """Load the generic taxonomy shipped with the package."""
    text = DEFAULT_TAXONOMY_PATH.read_text(encoding="utf-8")
    return Taxonomy.from_dict(json.loads(text))


def load_or_seed_taxonomy(store: ProjectStore) -> Taxonomy:
    """Load the project taxonomy, seeding it from the default when absent."""
    taxonomy = store.load_taxonomy()
    if taxonomy is None:
        taxonomy = load_default_taxonomy()
        store.save_taxonomy(taxonomy)
        logger.info("No project taxonomy found; copied generic default into project")
    return taxonomy
