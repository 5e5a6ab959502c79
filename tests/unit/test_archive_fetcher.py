"""Tests for GitHubArchiveFetcher, using httpx.MockTransport."""

import httpx
import pytest

from theme_installer.application.domain import RemoteRef
from theme_installer.application.exceptions import (
    ConfigurationError, RepositoryNotFound,
)
from theme_installer.infrastructure.archive_fetcher import GitHubArchiveFetcher

ZIPBALL_URL = "https://api.github.com/repos/acme/repo/zipball"
PAYLOAD = b"PK\x03\x04" + bytes(range(256)) * 64


def _fetcher(handler, token=None) -> GitHubArchiveFetcher:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return GitHubArchiveFetcher(
        client,
        base_url="https://api.github.com",
        timeout=5,
        chunk_size=1024,
        token=token,
        show_progress=False,
    )


class TestFetch:
    """Successful downloads land at the destination unchanged."""

    @pytest.mark.asyncio
    async def test_downloads_default_branch_zipball(self, tmp_path):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, content=PAYLOAD)

        destination = tmp_path / "repo.zip"
        size = await _fetcher(handler).fetch(RemoteRef("acme", "repo"), destination)

        assert size == len(PAYLOAD)
        assert destination.read_bytes() == PAYLOAD
        assert not (tmp_path / "repo.zip.part").exists()
        assert str(requests[0].url) == ZIPBALL_URL
        assert requests[0].headers["Accept"] == "application/vnd.github.v3+json"
        assert "Authorization" not in requests[0].headers

    @pytest.mark.asyncio
    async def test_follows_redirect_to_archive_host(self, tmp_path):
        def handler(request):
            if request.url.host == "api.github.com":
                return httpx.Response(
                    302,
                    headers={"Location": "https://codeload.github.com/acme/repo/zip"},
                )
            return httpx.Response(200, content=PAYLOAD)

        destination = tmp_path / "repo.zip"
        await _fetcher(handler).fetch(RemoteRef("acme", "repo"), destination)

        assert destination.read_bytes() == PAYLOAD

    @pytest.mark.asyncio
    async def test_sends_token_when_configured(self, tmp_path):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, content=PAYLOAD)

        await _fetcher(handler, token="ghp_secret").fetch(
            RemoteRef("acme", "repo"), tmp_path / "repo.zip"
        )

        assert requests[0].headers["Authorization"] == "Bearer ghp_secret"


class TestFailures:
    """404 is translated, everything else propagates unchanged."""

    @pytest.mark.asyncio
    async def test_404_becomes_repository_not_found(self, tmp_path):
        destination = tmp_path / "repo.zip"

        with pytest.raises(RepositoryNotFound) as exc_info:
            await _fetcher(lambda request: httpx.Response(404)).fetch(
                RemoteRef("acme", "repo"), destination
            )

        assert exc_info.value.context == ZIPBALL_URL
        assert exc_info.value.status_code == 400
        assert not destination.exists()
        assert not (tmp_path / "repo.zip.part").exists()

    @pytest.mark.asyncio
    async def test_server_error_propagates(self, tmp_path):
        with pytest.raises(httpx.HTTPStatusError) as exc_info:
            await _fetcher(lambda request: httpx.Response(502)).fetch(
                RemoteRef("acme", "repo"), tmp_path / "repo.zip"
            )

        assert exc_info.value.response.status_code == 502

    @pytest.mark.asyncio
    async def test_transport_error_propagates(self, tmp_path):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(httpx.ConnectError):
            await _fetcher(handler).fetch(
                RemoteRef("acme", "repo"), tmp_path / "repo.zip"
            )

        assert list(tmp_path.iterdir()) == []

    def test_placeholder_token_is_rejected(self):
        with pytest.raises(ConfigurationError):
            _fetcher(lambda request: httpx.Response(200), token="YOUR_TOKEN_HERE")
