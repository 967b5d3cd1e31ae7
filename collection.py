"""
In-memory filtering, facet options and summary counts for fetched collections.

Every admin screen and the public gallery work the same way: fetch the whole
collection, then filter it locally on each query or facet change. Matching is
a linear scan (items x fields) with no index, which is fine for the tens to
low hundreds of records a portfolio holds and is not meant to go further.
"""

from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from entities import BY_TYPE, EntitySpec, get_spec

ALL = "all"
DATA_TYPE = "dataType"
UNTITLED = "Untitled"
RECENT_LIMIT = 5

Record = Dict[str, Any]


def _contains(value: Any, needle: str) -> bool:
    if not value:
        return False
    if isinstance(value, (list, tuple)):
        return any(_contains(v, needle) for v in value)
    return needle in str(value).lower()


@dataclass(frozen=True)
class Summary:
    total: int
    filtered: int
    with_images: int
    facet_counts: Dict[str, Dict[str, int]] = field(default_factory=dict)

    def count(self, facet: str, value: str) -> int:
        return self.facet_counts.get(facet, {}).get(value, 0)


class FilterableCollection:
    """Filter/facet rules for one kind of collection.

    ``search_fields`` are matched case-insensitively by substring, any field
    being enough. ``facets`` are matched by exact equality, with ``"all"``
    meaning no constraint. Instances hold configuration only, never items.
    """

    def __init__(self, search_fields: Sequence[str], facets: Sequence[str] = ()):
        self.search_fields = tuple(search_fields)
        self.facets = tuple(facets)

    @classmethod
    def for_entity(cls, entity) -> "FilterableCollection":
        spec = get_spec(entity)
        return cls(spec.search_fields, spec.facets)

    def fields_for(self, item: Mapping[str, Any]) -> Tuple[str, ...]:
        return self.search_fields

    def matches_query(self, item: Mapping[str, Any], query: str) -> bool:
        if not query:
            return True
        needle = query.lower()
        return any(_contains(item.get(f), needle) for f in self.fields_for(item))

    def _active_facets(self, facets: Optional[Mapping[str, Optional[str]]]) -> Dict[str, str]:
        active = {}
        for name, value in (facets or {}).items():
            if name not in self.facets:
                raise ValueError(f"Unknown facet {name!r}, expected one of {self.facets}")
            if value is None or value == ALL:
                continue
            active[name] = value
        return active

    def filter(self, items: Iterable[Record], query: str = "", facets: Optional[Mapping[str, Optional[str]]] = None) -> List[Record]:
        active = self._active_facets(facets)
        return [
            item for item in items
            if self.matches_query(item, query)
            and all(item.get(name) == value for name, value in active.items())
        ]

    def derive_facet_options(self, items: Iterable[Record]) -> Dict[str, List[str]]:
        """Dropdown options per facet, from the full collection.

        ``"all"`` always comes first, then the distinct non-empty values in the
        order they were first seen.
        """
        items = list(items)
        options = {}
        for name in self.facets:
            seen = [ALL]
            for item in items:
                value = item.get(name)
                if value and value not in seen:
                    seen.append(value)
            options[name] = seen
        return options

    def summarize(self, items: Sequence[Record], subset: Optional[Sequence[Record]] = None) -> Summary:
        counts = {}
        for name in self.facets:
            counts[name] = dict(Counter(item.get(name) for item in items if item.get(name)))
        return Summary(
            total=len(items),
            filtered=len(subset if subset is not None else items),
            with_images=sum(1 for item in items if item.get("image")),
            facet_counts=counts,
        )


class TaggedCollection(FilterableCollection):
    """Rules for the merged gallery: search fields depend on each item's ``dataType``."""

    def __init__(self):
        super().__init__((), facets=(DATA_TYPE,))

    def fields_for(self, item: Mapping[str, Any]) -> Tuple[str, ...]:
        spec = BY_TYPE.get(item.get(DATA_TYPE))
        return spec.search_fields if spec else ()


def tag(items: Iterable[Mapping[str, Any]], entity) -> List[Record]:
    """Copy records, marking each with the entity's ``dataType``. Never persisted."""
    data_type = get_spec(entity).data_type
    return [{**item, DATA_TYPE: data_type} for item in items]


def _first_present(item: Mapping[str, Any], fields: Sequence[str]) -> Optional[str]:
    for name in fields:
        value = item.get(name)
        if value:
            return str(value)
    return None


def _spec_of(item: Mapping[str, Any], entity=None) -> Optional[EntitySpec]:
    if entity is not None:
        return get_spec(entity)
    return BY_TYPE.get(item.get(DATA_TYPE))


def display_title(item: Mapping[str, Any], entity=None) -> str:
    spec = _spec_of(item, entity)
    fields = spec.title_fields if spec else ("title", "name", "role")
    return _first_present(item, fields) or UNTITLED


def display_subtitle(item: Mapping[str, Any], entity=None) -> Optional[str]:
    spec = _spec_of(item, entity)
    fields = spec.subtitle_fields if spec else ("issuer", "company", "organization", "event")
    return _first_present(item, fields)


def display_facet(item: Mapping[str, Any], entity=None) -> Optional[str]:
    spec = _spec_of(item, entity)
    return _first_present(item, spec.facets) if spec else _first_present(item, ("type", "category"))


def newest(items: Sequence[Record], limit: int = RECENT_LIMIT) -> List[Record]:
    dated = sorted((i for i in items if i.get("created_at")), key=lambda i: str(i["created_at"]), reverse=True)
    return (dated + [i for i in items if not i.get("created_at")])[:limit]


def overview(collections: Mapping[str, Sequence[Record]], recent: int = RECENT_LIMIT) -> Dict[str, Any]:
    """Totals, category/issuer counts, a monthly timeline and the newest records per type.

    ``collections`` maps a ``dataType`` to its records. Months come from the
    ``YYYY-MM`` prefix of ``created_at``. Records without ``created_at`` sort
    after dated ones and otherwise keep the order they were given in.
    """
    totals = {data_type: len(items) for data_type, items in collections.items()}
    categories: Counter = Counter()
    issuers: Counter = Counter()
    timeline: Dict[str, Dict[str, int]] = {}

    for data_type, items in collections.items():
        for item in items:
            if item.get("category"):
                categories[item["category"]] += 1
            issuer = item.get("issuer") or item.get("company")
            if issuer:
                issuers[issuer] += 1
            created = item.get("created_at")
            if created:
                month = str(created)[:7]
                bucket = timeline.setdefault(month, {t: 0 for t in collections})
                bucket[data_type] += 1

    return {
        "totals": totals,
        "total": sum(totals.values()),
        "categories": dict(categories),
        "issuers": dict(issuers.most_common()),
        "timeline": dict(sorted(timeline.items())),
        "recent": {data_type: newest(items, recent) for data_type, items in collections.items()},
    }
