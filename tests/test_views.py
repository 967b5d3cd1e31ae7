import asyncio
from collections import Counter

import httpx
import pytest

from entities import ENTITIES
from views import AdminView, GalleryView, load_overview

SAMPLES = {
    "/badges": [{"id": "b1", "title": "Docker", "category": "devops"}],
    "/certificates": [
        {"id": "c1", "title": "AWS Dev", "category": "cloud"},
        {"id": "c2", "title": "React Basics", "category": "frontend"},
    ],
    "/internships": [{"id": "i1", "company": "Acme", "role": "React Intern", "skills": ["React"]}],
    "/contributions": [{"id": "k1", "title": "PyCon talk", "type": "speaking", "image": "/uploads/k.png"}],
    "/contributions/cert": [{"id": "cc1", "name": "Hack Night", "image": "/uploads/h.png"}],
}


def serve_samples(failing=()):
    def handler(request):
        path = request.url.path
        if path in failing:
            return httpx.Response(503, json={"detail": "unavailable"})
        return httpx.Response(200, json=SAMPLES[path])
    return handler


class SlowClient:
    """Stand-in client whose collection reads block until released."""

    def __init__(self):
        self.release = asyncio.Event()
        self.calls = Counter()
        self.active = Counter()
        self.peak = Counter()
        self.reported = []

    async def list_collection(self, spec):
        key = spec.data_type
        self.calls[key] += 1
        self.active[key] += 1
        self.peak[key] = max(self.peak[key], self.active[key])
        try:
            await self.release.wait()
        finally:
            self.active[key] -= 1
        return [{"id": f"{key}-{self.calls[key]}", "title": key}]

    def report(self, action, exc):
        self.reported.append((action, exc))


# Admin screens

@pytest.mark.asyncio
async def test_admin_view_filters_fetched_items(mock_client):
    view = AdminView(mock_client(serve_samples()), "certificates")
    assert view.loading
    await view.refresh()
    assert not view.loading

    view.set_query("react")
    assert [c["id"] for c in view.visible] == ["c2"]

    view.set_query("")
    view.set_facet("category", "cloud")
    assert [c["id"] for c in view.visible] == ["c1"]
    assert view.facet_options == {"category": ["all", "cloud", "frontend"]}
    assert view.summary.total == 2
    assert view.summary.filtered == 1

    view.set_facet("category", "all")
    assert len(view.visible) == 2


@pytest.mark.asyncio
async def test_admin_view_rejects_unknown_facet_and_mode(mock_client):
    view = AdminView(mock_client(serve_samples()), "badge")
    with pytest.raises(ValueError):
        view.set_facet("status", "Active")
    with pytest.raises(ValueError):
        view.set_view_mode("table")
    view.set_view_mode("list")
    assert view.view_mode == "list"


@pytest.mark.asyncio
async def test_create_refetches_collection(portfolio):
    view = AdminView(portfolio, "certificate")
    await view.refresh()
    assert view.items == []

    record = await view.create({"title": "X", "category": "cloud"})
    assert record["title"] == "X"
    assert [c["title"] for c in view.items] == ["X"]


@pytest.mark.asyncio
async def test_update_refetches_collection(portfolio):
    view = AdminView(portfolio, "internship")
    created = await view.create({"company": "Acme", "skills": ["Go"]})

    form = view.edit_form(view.find(created["id"]))
    assert form == {"company": "Acme", "skills": ["Go"]}
    form["status"] = "Active"
    await view.update(created["id"], form)
    assert view.items[0]["status"] == "Active"
    assert view.items[0]["skills"] == ["Go"]


@pytest.mark.asyncio
async def test_missing_required_fields_never_reach_the_server(mock_client):
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(201, json={})

    client = mock_client(handler)
    view = AdminView(client, "contribution")
    assert await view.create({"title": "Talk"}) is None
    assert requests == []
    [notice] = client.notices
    assert notice.kind == "validation"
    assert "type" in notice.message and "image" in notice.message


@pytest.mark.asyncio
async def test_failed_create_leaves_collection_unchanged(portfolio):
    view = AdminView(portfolio, "badge")
    await view.create({"title": "Kept"})
    portfolio.token = None

    assert await view.create({"title": "Lost"}) is None
    assert [b["title"] for b in view.items] == ["Kept"]
    assert portfolio.notices[-1].kind == "auth"


@pytest.mark.asyncio
async def test_delete_needs_confirmation(portfolio):
    view = AdminView(portfolio, "badge")
    created = await view.create({"title": "Docker"})

    assert await view.delete(created["id"], confirm=lambda item: False) is False
    assert len(view.items) == 1

    async def agree(item):
        assert item["title"] == "Docker"
        return True

    assert await view.delete(created["id"], confirm=agree) is True
    assert view.items == []


@pytest.mark.asyncio
async def test_closed_admin_view_discards_late_results(mock_client):
    view = AdminView(mock_client(serve_samples()), "certificate")
    view.close()
    await view.refresh()
    assert view.items == []
    assert view.loading


# Gallery

@pytest.mark.asyncio
async def test_gallery_merges_and_tags_every_type(mock_client):
    gallery = GalleryView(mock_client(serve_samples()), interval=60)
    await gallery.refresh()

    assert gallery.counts["all"] == 6
    assert {item["dataType"] for item in gallery.items} == {spec.data_type for spec in ENTITIES}
    tags = {item["id"]: item["dataType"] for item in gallery.items}
    assert tags["cc1"] == "contribution-cert"
    assert tags["k1"] == "contribution"

    gallery.set_query("react")
    assert sorted(item["id"] for item in gallery.visible) == ["c2", "i1"]

    gallery.set_tab("internships")
    assert [item["id"] for item in gallery.visible] == ["i1"]

    gallery.set_tab("all")
    gallery.set_query("")
    assert len(gallery.visible) == 6


@pytest.mark.asyncio
async def test_gallery_survives_one_failing_endpoint(mock_client):
    client = mock_client(serve_samples(failing={"/badges"}))
    gallery = GalleryView(client, interval=60)
    await gallery.refresh()

    assert gallery.counts["badge"] == 0
    assert gallery.counts["certificate"] == 2
    assert gallery.counts["all"] == 5
    assert all(item["dataType"] != "badge" for item in gallery.items)
    assert not gallery.loading
    [notice] = client.notices
    assert notice.action == "fetching badges"


@pytest.mark.asyncio
async def test_failed_type_degrades_to_empty_on_later_refresh(mock_client):
    failing = set()
    client = mock_client(serve_samples(failing=failing))
    gallery = GalleryView(client, interval=60)
    await gallery.refresh()
    assert gallery.counts["badge"] == 1

    failing.add("/badges")
    await gallery.refresh()
    assert gallery.counts["badge"] == 0
    assert gallery.counts["certificate"] == 2


@pytest.mark.asyncio
async def test_poll_ticks_do_not_overlap():
    client = SlowClient()
    gallery = GalleryView(client, interval=0.01)
    starting = asyncio.create_task(gallery.start())

    await asyncio.sleep(0.1)
    assert gallery.skipped_ticks > 0
    assert all(n == 1 for n in client.calls.values())
    assert all(n == 1 for n in client.peak.values())

    client.release.set()
    await starting
    await asyncio.sleep(0.05)
    assert all(n == 1 for n in client.peak.values())
    assert all(n > 1 for n in client.calls.values())
    await gallery.close()


@pytest.mark.asyncio
async def test_close_cancels_polling_and_in_flight_refresh():
    client = SlowClient()
    gallery = GalleryView(client, interval=0.01)
    starting = asyncio.create_task(gallery.start())
    await asyncio.sleep(0.02)

    await gallery.close()
    with pytest.raises(asyncio.CancelledError):
        await starting
    assert gallery.closed
    assert gallery.counts["all"] == 0

    calls = sum(client.calls.values())
    client.release.set()
    await asyncio.sleep(0.05)
    assert sum(client.calls.values()) == calls

    with pytest.raises(RuntimeError):
        await gallery.start()


@pytest.mark.asyncio
async def test_gallery_context_manager_polls_until_exit(mock_client):
    refreshed = []
    async with GalleryView(mock_client(serve_samples()), interval=0.01, on_refresh=refreshed.append) as gallery:
        await asyncio.sleep(0.05)
    assert len(refreshed) > 1
    assert gallery.closed
    count = len(refreshed)
    await asyncio.sleep(0.03)
    assert len(refreshed) == count


@pytest.mark.asyncio
async def test_load_overview_counts_every_type(mock_client):
    stats = await load_overview(mock_client(serve_samples()))
    assert stats["total"] == 6
    assert stats["totals"]["certificate"] == 2
    assert stats["categories"] == {"devops": 1, "cloud": 1, "frontend": 1}
    assert stats["issuers"] == {"Acme": 1}


@pytest.mark.asyncio
async def test_load_overview_includes_recent_panels(mock_client):
    stats = await load_overview(mock_client(serve_samples()))
    assert [c["id"] for c in stats["recent"]["certificate"]] == ["c1", "c2"]
    assert stats["recent"]["contribution-cert"][0]["name"] == "Hack Night"
