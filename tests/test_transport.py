"""Tests for fetch helpers, URL joining and environment configuration."""

import httpx
import pytest
from pydantic import ValidationError

from conftest import BASE_URL, FakeCatalogServer
from preset_catalog.config import DEFAULT_AUDIO_CACHE_SIZE, CatalogSettings
from preset_catalog.errors import FetchError, InvalidDocumentError
from preset_catalog.models import CatalogIndex
from preset_catalog.transport import (
    FetchResponse,
    HttpxFetcher,
    dir_of,
    fetch_bytes,
    fetch_document,
    join_url,
)


def mock_fetcher(server):
    return HttpxFetcher(httpx.AsyncClient(transport=httpx.MockTransport(server.handler)))


class TestUrls:
    @pytest.mark.parametrize("base,path,expected", [
        ("https://h/a", "b/c.json", "https://h/a/b/c.json"),
        ("https://h/a/", "/b.json", "https://h/a/b.json"),
        ("https://h/a", "https://cdn.other/x.wav", "https://cdn.other/x.wav"),
        ("https://h/a", "http://plain/x.wav", "http://plain/x.wav"),
        ("https://h/lib", "A4:v1.wav", "https://h/lib/A4:v1.wav"),
        ("https://h/lib", "c://odd.wav", "https://h/lib/c://odd.wav"),
    ])
    def test_join_url(self, base, path, expected):
        assert join_url(base, path) == expected

    @pytest.mark.parametrize("url,expected", [
        ("https://h/lib/index.json", "https://h/lib"),
        ("https://h/a/b/c/index.json", "https://h/a/b/c"),
    ])
    def test_dir_of(self, url, expected):
        assert dir_of(url) == expected

    def test_response_ok_range(self):
        assert FetchResponse("u", 204).ok
        assert not FetchResponse("u", 301).ok
        assert not FetchResponse("u", 404).ok


class TestFetch:
    @pytest.mark.asyncio
    async def test_bad_status_raises_with_url_and_status(self):
        server = FakeCatalogServer()
        server.fail("gone.json", 410)
        with pytest.raises(FetchError) as exc_info:
            await fetch_bytes(mock_fetcher(server), server.url("gone.json"))
        assert exc_info.value.status == 410
        assert exc_info.value.url == server.url("gone.json")
        assert "HTTP 410" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_transport_error_has_no_status(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        fetcher = HttpxFetcher(httpx.AsyncClient(transport=httpx.MockTransport(refuse)))
        with pytest.raises(FetchError) as exc_info:
            await fetcher.fetch(f"{BASE_URL}/index.json")
        assert exc_info.value.status is None

    @pytest.mark.asyncio
    async def test_document_parsed(self):
        server = FakeCatalogServer()
        server.add_json("index.json", {"name": "Root", "entries": []})
        root = await fetch_document(mock_fetcher(server), server.url("index.json"), CatalogIndex)
        assert root.name == "Root"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [b"not json", b'{"entries": []}', b'{"name": "x", "entries": [{}]}'])
    async def test_invalid_document(self, body):
        server = FakeCatalogServer()
        server.add_bytes("index.json", body)
        with pytest.raises(InvalidDocumentError) as exc_info:
            await fetch_document(mock_fetcher(server), server.url("index.json"), CatalogIndex)
        assert exc_info.value.url == server.url("index.json")

    @pytest.mark.asyncio
    async def test_borrowed_client_is_left_open(self):
        client = httpx.AsyncClient(transport=httpx.MockTransport(FakeCatalogServer().handler))
        fetcher = HttpxFetcher(client)
        await fetcher.aclose()
        assert not client.is_closed
        await client.aclose()


class TestSettings:
    def test_trailing_slash_stripped(self):
        assert CatalogSettings(base_url="https://h/presets//").base_url == "https://h/presets"

    def test_blank_url_rejected(self):
        with pytest.raises(ValidationError):
            CatalogSettings(base_url="  ")

    def test_cache_size_must_be_positive(self):
        with pytest.raises(ValidationError):
            CatalogSettings(base_url="https://h", audio_cache_size=0)

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("PRESET_CATALOG_URL", "https://h/presets/")
        monkeypatch.setenv("PRESET_CACHE_SIZE", "16")
        monkeypatch.setenv("PRESET_CATALOG_TIMEOUT", "2.5")
        monkeypatch.delenv("AUDIO_CACHE_SIZE", raising=False)
        settings = CatalogSettings.from_env()
        assert settings.base_url == "https://h/presets"
        assert settings.preset_cache_size == 16
        assert settings.audio_cache_size == DEFAULT_AUDIO_CACHE_SIZE
        assert settings.request_timeout == 2.5

    def test_from_env_unset(self, monkeypatch):
        monkeypatch.delenv("PRESET_CATALOG_URL", raising=False)
        assert CatalogSettings.from_env() is None
