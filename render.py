"""
Plain-text rendering of collections as a grid of cards or a list of rows.

Each entity type registers a card builder keyed by its ``dataType``. Grid and
list layouts are fed the same :class:`Card`, so both show the same fields.
"""

import textwrap
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from collection import DATA_TYPE, display_facet, display_subtitle, display_title
from entities import BY_TYPE

NO_IMAGE = "[no image]"
CARD_WIDTH = 34
GRID_COLUMNS = 3


@dataclass(frozen=True)
class Card:
    kind: str
    title: str
    subtitle: Optional[str]
    badge: Optional[str]
    image: str
    extras: Tuple[str, ...] = ()


CardBuilder = Callable[[Mapping[str, Any]], Card]

CARDS: Dict[str, CardBuilder] = {}


def card(data_type: str):
    def register(fn: CardBuilder) -> CardBuilder:
        CARDS[data_type] = fn
        return fn
    return register


def _base(item: Mapping[str, Any], data_type: str, extras: Tuple[str, ...] = ()) -> Card:
    return Card(
        kind=BY_TYPE[data_type].label,
        title=display_title(item, data_type),
        subtitle=display_subtitle(item, data_type),
        badge=display_facet(item, data_type),
        image=item.get("image") or NO_IMAGE,
        extras=extras,
    )


@card("certificate")
def certificate_card(item):
    return _base(item, "certificate")


@card("badge")
def badge_card(item):
    return _base(item, "badge")


@card("internship")
def internship_card(item):
    extras = []
    if item.get("duration"):
        extras.append(f"Duration: {item['duration']}")
    if item.get("mode") and item.get("status"):
        extras.append(f"Mode: {item['mode']}")
    if item.get("skills"):
        extras.append("Skills: " + ", ".join(item["skills"]))
    return _base(item, "internship", tuple(extras))


@card("contribution")
def contribution_card(item):
    extras = (f"Role: {item['role']}",) if item.get("role") else ()
    return _base(item, "contribution", extras)


@card("contribution-cert")
def contribution_cert_card(item):
    extras = (f"Role: {item['role']}",) if item.get("role") else ()
    return _base(item, "contribution-cert", extras)


def build_card(item: Mapping[str, Any], data_type: Optional[str] = None) -> Card:
    """Card for one record; ``data_type`` defaults to the record's own tag."""
    kind = data_type or item.get(DATA_TYPE)
    try:
        builder = CARDS[kind]
    except KeyError:
        raise ValueError(f"No card registered for {kind!r}") from None
    return builder(item)


def _card_lines(c: Card, width: int) -> List[str]:
    inner = width - 4
    lines = textwrap.wrap(c.title, inner) or [""]
    if c.subtitle:
        lines += textwrap.wrap(c.subtitle, inner)
    tags = f"[{c.kind}]" + (f" #{c.badge}" if c.badge else "")
    lines += textwrap.wrap(tags, inner)
    for extra in c.extras:
        lines += textwrap.wrap(extra, inner)
    lines += textwrap.wrap(c.image, inner, break_on_hyphens=False)
    border = "+" + "-" * (width - 2) + "+"
    return [border] + [f"| {line.ljust(inner)} |" for line in lines] + [border]


def render_grid(cards: Sequence[Card], columns: int = GRID_COLUMNS, width: int = CARD_WIDTH) -> str:
    rows = []
    for start in range(0, len(cards), columns):
        blocks = [_card_lines(c, width) for c in cards[start:start + columns]]
        height = max(len(b) for b in blocks)
        for b in blocks:
            b[-1:-1] = ["| " + " " * (width - 4) + " |"] * (height - len(b))
        rows.append("\n".join("  ".join(parts) for parts in zip(*blocks)))
    return "\n\n".join(rows)


def render_list(cards: Sequence[Card]) -> str:
    lines = []
    for c in cards:
        head = f"{c.title}"
        if c.subtitle:
            head += f" - {c.subtitle}"
        tags = f"[{c.kind}]" + (f" #{c.badge}" if c.badge else "")
        detail = "; ".join(c.extras)
        lines.append("  ".join(part for part in (head, tags, detail, c.image) if part))
    return "\n".join(lines)


def render_notices(notices: Iterable[Any]) -> str:
    return "\n".join(f"! {n.action}: {n.message}" for n in notices)


def render(items: Sequence[Mapping[str, Any]], mode: str = "grid", data_type: Optional[str] = None,
           empty: str = "No items found. Try adjusting your filters.", notices: Iterable[Any] = ()) -> str:
    """Render records in ``grid`` or ``list`` layout, with any pending notices on top."""
    banner = render_notices(notices)
    if not items:
        body = empty
    else:
        cards = [build_card(item, data_type) for item in items]
        if mode == "grid":
            body = render_grid(cards)
        elif mode == "list":
            body = render_list(cards)
        else:
            raise ValueError(f"Unknown view mode {mode!r}")
    return f"{banner}\n\n{body}" if banner else body


def render_detail(item: Mapping[str, Any], data_type: Optional[str] = None) -> str:
    """Detail view of one record, as opened by clicking its image."""
    c = build_card(item, data_type)
    lines = [c.title, f"{c.kind}" + (f" - {c.subtitle}" if c.subtitle else "")]
    if c.badge:
        lines.append(f"Type: {c.badge}")
    lines.extend(c.extras)
    if item.get("description"):
        lines.append(item["description"])
    lines.append(f"Image: {c.image}")
    if item.get("created_at"):
        lines.append(f"Added: {str(item['created_at'])[:10]}")
    return "\n".join(lines)


def render_summary(summary, label: str, highlights: Optional[Mapping[str, Sequence[str]]] = None) -> str:
    """One-line stats: totals, highlighted facet values, then every facet's counts."""
    parts = [f"Total {label}s: {summary.total}", f"Filtered: {summary.filtered}", f"With images: {summary.with_images}"]
    for facet, values in (highlights or {}).items():
        parts.extend(f"{value}: {summary.count(facet, value)}" for value in values)
    for facet, counts in summary.facet_counts.items():
        if counts:
            parts.append(f"{facet}: " + ", ".join(f"{k} ({v})" for k, v in counts.items()))
    return " | ".join(parts)
