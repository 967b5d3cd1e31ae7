"""
Registry of the entity types shared by the API and the gallery client.

Each entry ties together the ``dataType`` tag used in merged views, the REST
path, the Mongo collection, the validation model, and the fields the
filter engine and card renderer look at.
"""

from dataclasses import dataclass, field
from typing import Dict, Tuple, Type

from pydantic import BaseModel

from schemas import Badge, Certificate, Contribution, ContributionCert, Internship


@dataclass(frozen=True)
class EntitySpec:
    data_type: str
    label: str
    path: str
    model: Type[BaseModel]
    search_fields: Tuple[str, ...]
    facets: Tuple[str, ...] = ()
    title_fields: Tuple[str, ...] = ("title",)
    subtitle_fields: Tuple[str, ...] = ("issuer",)
    image_required: bool = False
    # Suggestions shown by admin forms; stored values are not restricted to these
    suggestions: Dict[str, Tuple[str, ...]] = field(default_factory=dict)
    # Facet values that get their own stats card on the admin screen
    highlights: Dict[str, Tuple[str, ...]] = field(default_factory=dict)

    @property
    def collection(self) -> str:
        return self.model.__name__.lower()

    @property
    def required_fields(self) -> Tuple[str, ...]:
        return tuple(name for name, f in self.model.model_fields.items() if f.is_required())

    @property
    def form_fields(self) -> Tuple[str, ...]:
        return tuple(f.serialization_alias or name for name, f in self.model.model_fields.items())


CATEGORY_SUGGESTIONS = ("frontend", "backend", "devops", "cloud", "database", "other")

CERTIFICATE = EntitySpec(
    data_type="certificate",
    label="Certificate",
    path="/certificates",
    model=Certificate,
    search_fields=("title", "issuer", "category"),
    facets=("category",),
    suggestions={"category": CATEGORY_SUGGESTIONS},
)

BADGE = EntitySpec(
    data_type="badge",
    label="Badge",
    path="/badges",
    model=Badge,
    search_fields=("title", "issuer", "category"),
    facets=("category",),
    suggestions={"category": CATEGORY_SUGGESTIONS[:-1] + ("ai-ml", "mobile", "security", "other")},
)

INTERNSHIP = EntitySpec(
    data_type="internship",
    label="Internship",
    path="/internships",
    model=Internship,
    search_fields=("company", "role", "skills"),
    facets=("status", "mode"),
    title_fields=("company",),
    subtitle_fields=("role",),
    suggestions={
        "status": ("Active", "Completed", "Upcoming"),
        "mode": ("Remote", "Onsite", "Hybrid"),
    },
    highlights={"status": ("Active",), "mode": ("Remote",)},
)

CONTRIBUTION = EntitySpec(
    data_type="contribution",
    label="Contribution",
    path="/contributions",
    model=Contribution,
    search_fields=("title", "issuer", "role", "type", "event"),
    facets=("type",),
    subtitle_fields=("event", "issuer"),
    image_required=True,
    suggestions={
        "type": (
            "conference", "workshop", "meetup", "opensource", "volunteer",
            "teaching", "mentoring", "speaking", "organizing", "other",
        ),
    },
    highlights={"type": ("conference", "workshop")},
)

CONTRIBUTION_CERT = EntitySpec(
    data_type="contribution-cert",
    label="Contribution Certificate",
    path="/contributions/cert",
    model=ContributionCert,
    search_fields=("name", "title", "event", "role", "issuer", "description"),
    facets=("type",),
    title_fields=("name", "title"),
    subtitle_fields=("event", "issuer"),
    image_required=True,
    suggestions={
        "type": (
            "internship", "certificate", "workshop", "conference",
            "hackathon", "volunteer", "training", "other",
        ),
    },
)

# Order matters: the nested /contributions/cert routes are registered first
ENTITIES: Tuple[EntitySpec, ...] = (BADGE, CERTIFICATE, INTERNSHIP, CONTRIBUTION_CERT, CONTRIBUTION)

BY_TYPE: Dict[str, EntitySpec] = {spec.data_type: spec for spec in ENTITIES}

# Plural aliases accepted on the command line ("badges", "contribution-certs", ...)
_ALIASES: Dict[str, str] = {}
for _spec in ENTITIES:
    _ALIASES[_spec.data_type + "s"] = _spec.data_type
    _ALIASES[_spec.path.strip("/").replace("/", "-")] = _spec.data_type


def get_spec(entity) -> EntitySpec:
    if isinstance(entity, EntitySpec):
        return entity
    key = _ALIASES.get(entity, entity)
    try:
        return BY_TYPE[key]
    except KeyError:
        raise ValueError(f"Unknown entity type: {entity!r}") from None
