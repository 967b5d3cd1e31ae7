"""
Screen state for the admin pages and the public gallery.

A view owns the fetched items plus the current query, facet selection and
layout; everything shown is recomputed from those on demand. Writes always go
to the server first and are followed by a full re-fetch, so local state is
never patched by hand.
"""

import asyncio
import inspect
import logging
import os
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Union

from client import ImageInput, Notice
from collection import ALL, DATA_TYPE, FilterableCollection, Summary, TaggedCollection, overview, tag
from entities import ENTITIES, get_spec

logger = logging.getLogger(__name__)

VIEW_MODES = ("grid", "list")
POLL_SECONDS = float(os.getenv("PORTFOLIO_POLL_SECONDS", "30"))

Confirm = Callable[[Dict[str, Any]], Union[bool, Awaitable[bool]]]


def _check_mode(mode: str) -> str:
    if mode not in VIEW_MODES:
        raise ValueError(f"View mode must be one of {VIEW_MODES}, got {mode!r}")
    return mode


class AdminView:
    """One entity type's admin screen: list, search, facet filters, CRUD."""

    def __init__(self, client, entity):
        self.client = client
        self.spec = get_spec(entity)
        self.rules = FilterableCollection.for_entity(self.spec)
        self.items: List[Dict[str, Any]] = []
        self.loading = True
        self.query = ""
        self.facets: Dict[str, str] = {name: ALL for name in self.spec.facets}
        self.view_mode = "grid"
        self._closed = False

    async def refresh(self) -> None:
        items = await self.client.fetch_all(self.spec)
        if self._closed:
            return
        self.items = items
        self.loading = False

    def close(self) -> None:
        self._closed = True

    def set_query(self, query: str) -> None:
        self.query = query or ""

    def set_facet(self, name: str, value: Optional[str]) -> None:
        if name not in self.facets:
            raise ValueError(f"{self.spec.label} has no facet {name!r}")
        self.facets[name] = value or ALL

    def set_view_mode(self, mode: str) -> None:
        self.view_mode = _check_mode(mode)

    @property
    def visible(self) -> List[Dict[str, Any]]:
        return self.rules.filter(self.items, self.query, self.facets)

    @property
    def facet_options(self) -> Dict[str, List[str]]:
        return self.rules.derive_facet_options(self.items)

    @property
    def summary(self) -> Summary:
        return self.rules.summarize(self.items, self.visible)

    def find(self, id: str) -> Optional[Dict[str, Any]]:
        return next((item for item in self.items if item.get("id") == id), None)

    def edit_form(self, item: Mapping[str, Any]) -> Dict[str, Any]:
        """Form fields pre-filled from a stored record; the image is sent only when replaced."""
        return {name: item.get(name) for name in self.spec.form_fields if name != "image" and item.get(name) is not None}

    def missing_fields(self, fields: Mapping[str, Any], image: Optional[ImageInput], creating: bool) -> List[str]:
        missing = []
        for name in self.spec.required_fields:
            if name == "image":
                if creating and image is None and not fields.get("image"):
                    missing.append(name)
            elif not str(fields.get(name) or "").strip():
                missing.append(name)
        return missing

    def _rejected(self, action: str, missing: List[str]) -> None:
        message = "Missing required field(s): " + ", ".join(missing)
        logger.warning("Not %s %s: %s", action, self.spec.data_type, message)
        self.client.notify(Notice(kind="validation", action=f"{action} {self.spec.data_type}", message=message))

    async def create(self, fields: Mapping[str, Any], image: Optional[ImageInput] = None) -> Optional[Dict[str, Any]]:
        missing = self.missing_fields(fields, image, creating=True)
        if missing:
            self._rejected("creating", missing)
            return None
        record = await self.client.create(self.spec, fields, image)
        if record is not None:
            await self.refresh()
        return record

    async def update(self, id: str, fields: Mapping[str, Any], image: Optional[ImageInput] = None) -> Optional[Dict[str, Any]]:
        missing = self.missing_fields(fields, image, creating=False)
        if missing:
            self._rejected("updating", missing)
            return None
        record = await self.client.update(self.spec, id, fields, image)
        if record is not None:
            await self.refresh()
        return record

    async def delete(self, id: str, confirm: Confirm) -> bool:
        """Delete after ``confirm(item)`` agrees. Deleting is irreversible."""
        item = self.find(id) or {"id": id}
        answer = confirm(item)
        if inspect.isawaitable(answer):
            answer = await answer
        if not answer:
            logger.info("Delete of %s %s cancelled", self.spec.data_type, id)
            return False
        deleted = await self.client.delete(self.spec, id)
        if deleted:
            await self.refresh()
        return deleted


class GalleryView:
    """Public gallery: every entity type merged, tagged, searchable, kept fresh by polling.

    ``start()`` fetches once and begins polling every ``interval`` seconds; a
    tick is skipped while the previous refresh is still running. ``close()``
    cancels the timer and any refresh in flight; late results are dropped.
    """

    def __init__(self, client, interval: Optional[float] = None, on_refresh: Optional[Callable[["GalleryView"], None]] = None):
        self.client = client
        self.interval = POLL_SECONDS if interval is None else interval
        self.on_refresh = on_refresh
        self.rules = TaggedCollection()
        self.collections: Dict[str, List[Dict[str, Any]]] = {spec.data_type: [] for spec in ENTITIES}
        self.tab = ALL
        self.query = ""
        self.view_mode = "grid"
        self.loading = True
        self.last_refreshed: Optional[datetime] = None
        self.skipped_ticks = 0
        self._poll_task: Optional[asyncio.Task] = None
        self._refresh_task: Optional[asyncio.Task] = None
        self._closed = False

    async def __aenter__(self) -> "GalleryView":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def refreshing(self) -> bool:
        return self._refresh_task is not None and not self._refresh_task.done()

    async def start(self) -> None:
        if self._closed:
            raise RuntimeError("GalleryView is closed")
        if self._poll_task is None:
            self._poll_task = asyncio.create_task(self._poll())
        await self.refresh()

    async def close(self) -> None:
        self._closed = True
        tasks = [t for t in (self._poll_task, self._refresh_task) if t is not None and not t.done()]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._poll_task = None
        self._refresh_task = None

    async def refresh(self) -> None:
        """Fetch every entity type; joins a refresh that is already running."""
        if self._closed:
            return
        await self._start_refresh()

    def _start_refresh(self) -> asyncio.Task:
        if not self.refreshing:
            self._refresh_task = asyncio.ensure_future(self._fetch_everything())
            self._refresh_task.add_done_callback(self._log_crash)
        return self._refresh_task

    @staticmethod
    def _log_crash(task: asyncio.Task) -> None:
        if not task.cancelled() and task.exception() is not None:
            logger.error("Gallery refresh crashed", exc_info=task.exception())

    async def _poll(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            if self.refreshing:
                self.skipped_ticks += 1
                logger.debug("Previous refresh still running, skipping poll tick")
                continue
            self._start_refresh()

    async def _fetch_everything(self) -> None:
        results = await asyncio.gather(
            *(self.client.list_collection(spec) for spec in ENTITIES),
            return_exceptions=True,
        )
        if self._closed:
            return
        for spec, result in zip(ENTITIES, results):
            if isinstance(result, Exception):
                self.client.report(f"fetching {spec.path.strip('/').replace('/', ' ')}", result)
                self.collections[spec.data_type] = []
            elif isinstance(result, BaseException):
                raise result
            else:
                self.collections[spec.data_type] = tag(result, spec)
        self.loading = False
        self.last_refreshed = datetime.now(timezone.utc)
        if self.on_refresh is not None:
            self.on_refresh(self)

    def set_tab(self, tab: Optional[str]) -> None:
        self.tab = ALL if not tab or tab == ALL else get_spec(tab).data_type

    def set_query(self, query: str) -> None:
        self.query = query or ""

    def set_view_mode(self, mode: str) -> None:
        self.view_mode = _check_mode(mode)

    @property
    def items(self) -> List[Dict[str, Any]]:
        merged: List[Dict[str, Any]] = []
        for spec in ENTITIES:
            merged.extend(self.collections[spec.data_type])
        return merged

    @property
    def visible(self) -> List[Dict[str, Any]]:
        return self.rules.filter(self.items, self.query, {DATA_TYPE: self.tab})

    @property
    def counts(self) -> Dict[str, int]:
        counts = {data_type: len(items) for data_type, items in self.collections.items()}
        counts[ALL] = sum(counts.values())
        return counts


async def load_overview(client) -> Dict[str, Any]:
    """Admin dashboard numbers: totals, categories, issuers, monthly timeline and recent records."""
    results = await asyncio.gather(*(client.fetch_all(spec) for spec in ENTITIES))
    return overview({spec.data_type: items for spec, items in zip(ENTITIES, results)})
