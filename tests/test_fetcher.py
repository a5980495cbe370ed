"""Tests for the page fetcher's retry and reachability behaviour."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from entity_verifier.clients.fetcher import PageFetcher


def _response(status_code, text=""):
    resp = MagicMock()
    resp.status_code = status_code
    resp.text = text
    return resp


def _mock_client():
    mock_client = AsyncMock()
    mock_client.__aenter__ = AsyncMock(return_value=mock_client)
    mock_client.__aexit__ = AsyncMock(return_value=False)
    return mock_client


class TestFetch:
    @pytest.mark.asyncio
    async def test_success(self):
        mock_client = _mock_client()
        mock_client.get.return_value = _response(200, "<html>ok</html>")

        with patch("entity_verifier.clients.fetcher.httpx.AsyncClient") as MockClient:
            MockClient.return_value = mock_client
            html = await PageFetcher().fetch("https://acme.com/contact")

        assert html == "<html>ok</html>"
        mock_client.get.assert_called_once_with("https://acme.com/contact")

    @pytest.mark.asyncio
    async def test_retries_server_errors_with_backoff(self):
        mock_client = _mock_client()
        mock_client.get.side_effect = [
            _response(503), _response(502), _response(200, "<html>third time</html>"),
        ]

        with (
            patch("entity_verifier.clients.fetcher.httpx.AsyncClient") as MockClient,
            patch("entity_verifier.clients.fetcher.asyncio.sleep", new_callable=AsyncMock) as mock_sleep,
        ):
            MockClient.return_value = mock_client
            html = await PageFetcher(max_attempts=3, backoff_seconds=1.0).fetch("https://acme.com")

        assert html == "<html>third time</html>"
        assert mock_client.get.call_count == 3
        assert [c.args[0] for c in mock_sleep.call_args_list] == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self):
        mock_client = _mock_client()
        mock_client.get.return_value = _response(429)

        with (
            patch("entity_verifier.clients.fetcher.httpx.AsyncClient") as MockClient,
            patch("entity_verifier.clients.fetcher.asyncio.sleep", new_callable=AsyncMock) as mock_sleep,
        ):
            MockClient.return_value = mock_client
            html = await PageFetcher(max_attempts=3).fetch("https://acme.com")

        assert html == ""
        assert mock_client.get.call_count == 3
        assert mock_sleep.call_count == 2

    @pytest.mark.asyncio
    async def test_transport_errors_are_retried(self):
        mock_client = _mock_client()
        mock_client.get.side_effect = [httpx.ConnectError("refused"), _response(200, "<p>up</p>")]

        with (
            patch("entity_verifier.clients.fetcher.httpx.AsyncClient") as MockClient,
            patch("entity_verifier.clients.fetcher.asyncio.sleep", new_callable=AsyncMock),
        ):
            MockClient.return_value = mock_client
            assert await PageFetcher(max_attempts=3).fetch("https://acme.com") == "<p>up</p>"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [401, 403, 404])
    async def test_permanent_failures_are_not_retried(self, status):
        mock_client = _mock_client()
        mock_client.get.return_value = _response(status)

        with (
            patch("entity_verifier.clients.fetcher.httpx.AsyncClient") as MockClient,
            patch("entity_verifier.clients.fetcher.asyncio.sleep", new_callable=AsyncMock) as mock_sleep,
        ):
            MockClient.return_value = mock_client
            assert await PageFetcher(max_attempts=3).fetch("https://acme.com/gone") == ""

        mock_client.get.assert_called_once()
        mock_sleep.assert_not_called()

    @pytest.mark.asyncio
    async def test_invalid_url_is_not_requested(self):
        with patch("entity_verifier.clients.fetcher.httpx.AsyncClient") as MockClient:
            assert await PageFetcher().fetch("acme.com") == ""
            assert await PageFetcher().fetch("") == ""
            MockClient.assert_not_called()


class TestHead:
    @pytest.mark.asyncio
    async def test_reachable(self):
        mock_client = _mock_client()
        mock_client.head.return_value = _response(200)

        with patch("entity_verifier.clients.fetcher.httpx.AsyncClient") as MockClient:
            MockClient.return_value = mock_client
            assert await PageFetcher().head("https://acme.com/team/jane") is True

        mock_client.get.assert_not_called()

    @pytest.mark.asyncio
    async def test_falls_back_to_get_on_405(self):
        mock_client = _mock_client()
        mock_client.head.return_value = _response(405)
        mock_client.get.return_value = _response(200)

        with patch("entity_verifier.clients.fetcher.httpx.AsyncClient") as MockClient:
            MockClient.return_value = mock_client
            assert await PageFetcher().head("https://acme.com/team/jane") is True

        mock_client.get.assert_called_once_with("https://acme.com/team/jane")

    @pytest.mark.asyncio
    async def test_not_found(self):
        mock_client = _mock_client()
        mock_client.head.return_value = _response(404)

        with patch("entity_verifier.clients.fetcher.httpx.AsyncClient") as MockClient:
            MockClient.return_value = mock_client
            assert await PageFetcher().head("https://acme.com/team/nobody") is False

    @pytest.mark.asyncio
    async def test_network_error(self):
        mock_client = _mock_client()
        mock_client.head.side_effect = httpx.ConnectError("refused")

        with patch("entity_verifier.clients.fetcher.httpx.AsyncClient") as MockClient:
            MockClient.return_value = mock_client
            assert await PageFetcher().head("https://acme.com") is False

    @pytest.mark.asyncio
    async def test_invalid_url(self):
        assert await PageFetcher().head("not a url") is False
