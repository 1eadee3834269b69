"""
API tests for the news, highlight, filter and scraper routers.

Tests cover:
- Listing news with filters and paging
- Read and important status endpoints
- Highlight endpoints: optimistic add, replace, clear and render
- Flushing debounced highlight writes on shutdown
- Researcher and query lists
- Scraper endpoints with a mocked HTTP transport
"""

import os
import tempfile

import httpx
import pytest
from fastapi.testclient import TestClient

from main import app
from newsdesk.dependencies import (
    get_highlight_editor,
    get_news_service,
    get_scraper_service,
)
from newsdesk.services.highlight_editor import HighlightEditor
from newsdesk.services.news_scraper import NewsScraperService
from newsdesk.services.news_service import NewsService

SEARCH_PAGE = """
<html><body>
  <a class="title" href="https://example.com/rover">Mars rover finds ancient riverbed</a>
  <a class="title" href="https://example.com/probe">Probe reaches Jupiter orbit today</a>
</body></html>
"""


def search_handler(request: httpx.Request) -> httpx.Response:
    if request.url.params.get("q") == "broken":
        return httpx.Response(500, text="error")
    return httpx.Response(200, text=SEARCH_PAGE)


@pytest.fixture
def temp_db_path():
    """Create temporary database path"""
    with tempfile.NamedTemporaryFile(mode="w", delete=False, suffix=".db") as f:
        db_path = f.name

    yield db_path

    if os.path.exists(db_path):
        os.unlink(db_path)


@pytest.fixture
def news_service(temp_db_path):
    return NewsService(db_path=temp_db_path)


@pytest.fixture
def editor(news_service):
    # Long delay: writes only happen on replace or on shutdown flush
    return HighlightEditor(news_service, delay=30)


@pytest.fixture
def client(news_service, editor):
    """Test client with services backed by a temporary database"""
    scraper = NewsScraperService(
        news_service,
        default_researcher="Ada",
        transport=httpx.MockTransport(search_handler),
    )
    app.dependency_overrides[get_news_service] = lambda: news_service
    app.dependency_overrides[get_highlight_editor] = lambda: editor
    app.dependency_overrides[get_scraper_service] = lambda: scraper

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def news_id(news_service):
    return news_service.create_news(
        title="Rover finds riverbed",
        link="https://example.com/rover",
        researcher="Ada",
        summary="The **rover** found *ancient* water",
        date="2024-05-25T10:00:00Z",
        query="mars",
    )


class TestHealth:
    """Test root and health endpoints"""

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}


class TestNewsEndpoints:
    """Test news listing and status updates"""

    def test_list_news(self, client, news_service, news_id):
        """Test listing with researcher and search filters"""
        news_service.create_news(
            "Probe reaches Jupiter", "https://example.com/probe", "Grace"
        )

        response = client.get("/news/", params={"researcher": "Ada", "q": "rover"})

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 1
        assert data["items"][0]["id"] == news_id
        assert data["page"] == 1

    def test_page_size_capped(self, client, news_id):
        """Test that page_size is capped at the configured maximum"""
        response = client.get("/news/", params={"page_size": 5000})
        assert response.status_code == 200
        assert response.json()["page_size"] == 100

    def test_invalid_page(self, client):
        """Test that page numbers start at 1"""
        assert client.get("/news/", params={"page": 0}).status_code == 422

    def test_get_news(self, client, news_id):
        """Test fetching one item"""
        response = client.get(f"/news/{news_id}")
        assert response.status_code == 200
        assert response.json()["summary"] == "The **rover** found *ancient* water"

    def test_get_missing_news(self, client):
        assert client.get("/news/999").status_code == 404

    def test_mark_read(self, client, news_id):
        """Test that PATCH read marks read by default and moves the item between views"""
        response = client.patch(f"/news/{news_id}/read")
        assert response.status_code == 200
        assert response.json() == {"success": True, "is_read": True}

        read = client.get("/news/", params={"show_read": "true"}).json()
        unread = client.get("/news/", params={"show_read": "false"}).json()
        assert [item["id"] for item in read["items"]] == [news_id]
        assert unread["total"] == 0

    def test_mark_unread(self, client, news_id):
        client.patch(f"/news/{news_id}/read")
        response = client.patch(f"/news/{news_id}/read", json={"is_read": False})

        assert response.json()["is_read"] is False
        assert client.get(f"/news/{news_id}").json()["read_date"] is None

    def test_mark_important(self, client, news_id):
        """Test that important items move to the important view"""
        response = client.patch(
            f"/news/{news_id}/important", json={"is_important": True}
        )
        assert response.status_code == 200

        important = client.get("/news/", params={"show_important": "true"}).json()
        regular = client.get("/news/").json()
        assert important["total"] == 1
        assert regular["total"] == 0

    def test_status_on_missing_item(self, client):
        assert client.patch("/news/999/read").status_code == 404
        assert (
            client.patch("/news/999/important", json={"is_important": True}).status_code
            == 404
        )


class TestHighlightEndpoints:
    """Test highlight endpoints"""

    def test_add_highlight_is_optimistic(self, client, news_service, news_id):
        """Test that a new highlight is visible at once and written later"""
        # Canonical text: "The rover found ancient water"
        response = client.post(f"/news/{news_id}/highlights", json={"start": 4, "end": 9})

        assert response.status_code == 200
        data = response.json()
        assert data["created"]["text"] == "rover"
        assert data["pending_write"] is True

        listed = client.get(f"/news/{news_id}/highlights").json()["highlights"]
        assert [(h["start"], h["end"]) for h in listed] == [(4, 9)]
        assert client.get(f"/news/{news_id}").json()["highlights"][0]["text"] == "rover"
        assert news_service.get_highlights(news_id) == []

    def test_add_highlight_from_points(self, client, news_id):
        """Test a selection given as rendered text-node boundaries"""
        # Rendered nodes: "The ", "rover", " found ", "ancient", " water"
        response = client.post(
            f"/news/{news_id}/highlights",
            json={"anchor": {"node": 3, "offset": 0}, "focus": {"node": 4, "offset": 6}},
        )

        assert response.status_code == 200
        assert response.json()["created"]["text"] == "ancient water"

    def test_overlapping_selection_returns_stored_highlight(self, client, news_id):
        """Test that a selection merged into another returns the highlight that covers it"""
        first = client.post(f"/news/{news_id}/highlights", json={"start": 4, "end": 9})
        second = client.post(f"/news/{news_id}/highlights", json={"start": 6, "end": 15})

        created = second.json()["created"]
        assert created["id"] == first.json()["created"]["id"]
        assert (created["start"], created["end"]) == (4, 15)
        assert [h["id"] for h in second.json()["highlights"]] == [created["id"]]

    def test_empty_selection(self, client, news_id):
        """Test that a zero-length selection creates nothing"""
        response = client.post(f"/news/{news_id}/highlights", json={"start": 3, "end": 3})

        assert response.status_code == 200
        assert response.json()["created"] is None
        assert response.json()["pending_write"] is False

    def test_selection_out_of_range(self, client, news_id):
        response = client.post(
            f"/news/{news_id}/highlights", json={"start": 0, "end": 500}
        )
        assert response.status_code == 422

    def test_selection_missing_fields(self, client, news_id):
        response = client.post(f"/news/{news_id}/highlights", json={"start": 1})
        assert response.status_code == 400

    def test_highlights_for_missing_item(self, client):
        assert client.get("/news/999/highlights").status_code == 404
        assert (
            client.post("/news/999/highlights", json={"start": 0, "end": 1}).status_code
            == 404
        )

    def test_replace_highlights(self, client, news_service, news_id):
        """Test that PUT merges and stores the set immediately"""
        response = client.put(
            f"/news/{news_id}/highlights",
            json={
                "highlights": [
                    {"id": "a", "start": 4, "end": 9, "text": "rover"},
                    {"id": "b", "start": 9, "end": 15, "text": " found"},
                ]
            },
        )

        assert response.status_code == 200
        assert [(h["id"], h["start"], h["end"]) for h in response.json()["highlights"]] == [
            ("a", 4, 15)
        ]
        assert [h["id"] for h in news_service.get_highlights(news_id)] == ["a"]

    def test_replace_rejects_invalid_entries(self, client, news_id):
        """Test that malformed highlight payloads are rejected"""
        response = client.put(
            f"/news/{news_id}/highlights",
            json={"highlights": [{"id": "a", "start": "4", "end": 9, "text": "rover"}]},
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid highlight data structure"

    def test_clear_highlights(self, client, news_id):
        client.post(f"/news/{news_id}/highlights", json={"start": 4, "end": 9})

        response = client.delete(f"/news/{news_id}/highlights")

        assert response.status_code == 200
        assert client.get(f"/news/{news_id}/highlights").json()["highlights"] == []

    def test_render(self, client, news_id):
        """Test rendering with emphasis and a highlight"""
        client.post(f"/news/{news_id}/highlights", json={"start": 0, "end": 9})

        data = client.get(f"/news/{news_id}/render").json()

        assert data["text"] == "The rover found ancient water"
        assert "**" not in data["html"]
        assert data["html"].startswith('<mark class="highlight"')
        assert "".join(s["text"] for s in data["segments"]) == data["text"]
        assert [s["is_highlighted"] for s in data["segments"]][:2] == [True, True]

    def test_pending_writes_flushed_on_shutdown(
        self, news_service, editor, news_id
    ):
        """Test that debounced writes still waiting are stored when the app stops"""
        app.dependency_overrides[get_news_service] = lambda: news_service
        app.dependency_overrides[get_highlight_editor] = lambda: editor
        try:
            with TestClient(app) as test_client:
                test_client.post(
                    f"/news/{news_id}/highlights", json={"start": 4, "end": 9}
                )
                assert news_service.get_highlights(news_id) == []
        finally:
            app.dependency_overrides.clear()

        assert [(h["start"], h["end"]) for h in news_service.get_highlights(news_id)] == [
            (4, 9)
        ]


class TestFilterEndpoints:
    """Test researcher and query lists"""

    def test_researchers_and_queries(self, client, news_service, news_id):
        news_service.create_news("Probe reaches Jupiter", "https://x.com/p", "Grace")

        assert client.get("/researchers").json() == ["Ada", "Grace"]
        assert client.get("/queries").json() == ["mars"]


class TestScraperEndpoints:
    """Test scraper endpoints"""

    def test_scrape_get(self, client, news_service):
        """Test a single query without saving"""
        response = client.get("/scraper/bing", params={"q": "mars rover"})

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert len(data["data"]) == 2
        assert data["save_result"] is None
        assert news_service.get_researchers() == []

    def test_scrape_get_and_save(self, client, news_service):
        response = client.get(
            "/scraper/bing", params={"q": "mars", "save": "1", "researcher": "Grace"}
        )

        assert response.json()["save_result"]["inserted_count"] == 2
        assert news_service.get_researchers() == ["Grace"]

    def test_scrape_get_failure(self, client):
        """Test that an upstream failure is reported as a bad gateway"""
        assert client.get("/scraper/bing", params={"q": "broken"}).status_code == 502

    def test_scrape_get_requires_query(self, client):
        assert client.get("/scraper/bing", params={"q": "  "}).status_code == 400

    def test_scrape_post_many(self, client):
        """Test several queries with one failing"""
        response = client.post(
            "/scraper/bing", json={"queries": ["mars", "broken"], "save_to_db": False}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is False
        assert [o["query"] for o in data["data"]] == ["mars", "broken"]
        assert data["data"][1]["error"]

    def test_scrape_post_requires_query(self, client):
        assert client.post("/scraper/bing", json={}).status_code == 400
