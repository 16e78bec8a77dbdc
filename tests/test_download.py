"""
Tests for policy file downloads.

URL downloads and appliance downloads run against a real aiohttp server;
redirect handling uses a scripted streaming sender since redirects are
always followed over HTTPS.
"""

from contextlib import asynccontextmanager

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from policy_migration.core.exceptions import (
    NotFoundError,
    TransferError,
    TransportError,
    UnsupportedProtocolError,
)
from policy_migration.endpoints.base import LocalEndpoint
from policy_migration.endpoints.credentials import TrustTokenProvider
from policy_migration.transfer.download import Downloader
from policy_migration.transfer.methods import redirect_target
from policy_migration.transport.sender import AiohttpRequestSender

POLICY_XML = b"<?xml version='1.0'?><policy name='linux-high'>" + b"x" * 5000 + b"</policy>"


def policy_app() -> web.Application:
    async def policy(request):
        return web.Response(body=POLICY_XML, content_type="text/xml")

    async def missing(request):
        return web.Response(status=404, text="not here")

    async def appliance_download(request):
        if request.headers.get("Authorization") != "Basic YWRtaW46":
            return web.Response(status=401)
        if request.match_info["name"] != "exportedPolicy_42.xml":
            return web.Response(status=404, text="no such file")
        return web.Response(body=POLICY_XML)

    app = web.Application()
    app.router.add_get("/policy.xml", policy)
    app.router.add_get("/missing.xml", missing)
    app.router.add_get("/mgmt/tm/asm/file-transfer/downloads/{name}", appliance_download)
    return app


class FakeContent:
    def __init__(self, data: bytes):
        self.data = data

    async def iter_chunked(self, size: int):
        for start in range(0, len(self.data), size):
            yield self.data[start:start + size]


class FakeResponse:
    def __init__(self, status: int, body: bytes = b"", headers=None):
        self.status = status
        self.headers = headers or {}
        self.content = FakeContent(body)
        self.content_length = len(body) or None


class StreamingSender:
    """Streaming sender replaying canned responses."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.urls = []

    @asynccontextmanager
    async def request(self, method, url, **kwargs):
        self.urls.append(url)
        yield self.responses.pop(0)


class TestRedirectTarget:
    """Test cases for redirect_target."""

    def test_relative_location(self):
        """Test relative locations resolve against the original host over HTTPS."""
        assert redirect_target("http://example.com/a/p.xml?x=1", "/moved/p.xml") == \
            "https://example.com/moved/p.xml"

    def test_absolute_location(self):
        """Test absolute locations keep their host and switch to HTTPS."""
        assert redirect_target("http://example.com/p.xml", "http://cdn.example.com/p.xml?sig=1") == \
            "https://cdn.example.com/p.xml?sig=1"


class TestUrlDownload:
    """Test cases for Downloader.download."""

    @pytest.mark.asyncio
    async def test_http_download(self, settings, staging_dir):
        """Test streaming an HTTP source into the staging directory."""
        sender = AiohttpRequestSender()
        try:
            async with TestServer(policy_app()) as server:
                downloader = Downloader(sender, settings)
                result = await downloader.download(str(server.make_url("/policy.xml")), "exportedPolicy_p.xml")
        finally:
            await sender.close()

        assert result == "exportedPolicy_p.xml"
        assert (staging_dir / "exportedPolicy_p.xml").read_bytes() == POLICY_XML
        assert not (staging_dir / "exportedPolicy_p.xml.part").exists()

    @pytest.mark.asyncio
    async def test_existing_file_replaced(self, settings, staging_dir):
        """Test a file already at the destination is replaced."""
        (staging_dir / "exportedPolicy_p.xml").write_text("stale")
        sender = AiohttpRequestSender()
        try:
            async with TestServer(policy_app()) as server:
                await Downloader(sender, settings).download(
                    str(server.make_url("/policy.xml")), "exportedPolicy_p.xml"
                )
        finally:
            await sender.close()

        assert (staging_dir / "exportedPolicy_p.xml").read_bytes() == POLICY_XML

    @pytest.mark.asyncio
    async def test_error_status_is_soft_failure(self, settings, staging_dir):
        """Test an error status returns None and leaves no file."""
        (staging_dir / "exportedPolicy_p.xml").write_text("stale")
        sender = AiohttpRequestSender()
        try:
            async with TestServer(policy_app()) as server:
                result = await Downloader(sender, settings).download(
                    str(server.make_url("/missing.xml")), "exportedPolicy_p.xml"
                )
        finally:
            await sender.close()

        assert result is None
        assert list(staging_dir.iterdir()) == []

    @pytest.mark.asyncio
    async def test_unreachable_url_is_soft_failure(self, settings, staging_dir):
        """Test a connection failure returns None."""
        sender = AiohttpRequestSender()
        try:
            result = await Downloader(sender, settings).download(
                "http://127.0.0.1:1/policy.xml", "exportedPolicy_p.xml"
            )
        finally:
            await sender.close()

        assert result is None
        assert list(staging_dir.iterdir()) == []

    @pytest.mark.asyncio
    async def test_follows_one_redirect_over_https(self, settings, staging_dir):
        """Test a redirect is followed once, over HTTPS."""
        sender = StreamingSender(
            FakeResponse(302, headers={"Location": "/moved/p.xml"}),
            FakeResponse(200, POLICY_XML),
        )

        result = await Downloader(sender, settings).download("http://example.com/p.xml", "exportedPolicy_p.xml")

        assert result == "exportedPolicy_p.xml"
        assert sender.urls == ["http://example.com/p.xml", "https://example.com/moved/p.xml"]
        assert (staging_dir / "exportedPolicy_p.xml").read_bytes() == POLICY_XML

    @pytest.mark.asyncio
    async def test_second_redirect_not_followed(self, settings, staging_dir):
        """Test redirect chains stop after one hop."""
        sender = StreamingSender(
            FakeResponse(301, headers={"Location": "https://a.example.com/p.xml"}),
            FakeResponse(302, headers={"Location": "https://b.example.com/p.xml"}),
        )

        result = await Downloader(sender, settings).download("http://example.com/p.xml", "exportedPolicy_p.xml")

        assert result is None
        assert len(sender.urls) == 2
        assert list(staging_dir.iterdir()) == []

    @pytest.mark.asyncio
    async def test_file_source_linked(self, settings, staging_dir, tmp_path):
        """Test file sources are linked into the staging directory."""
        source = tmp_path / "linux-high.xml"
        source.write_bytes(POLICY_XML)

        result = await Downloader(None, settings).download(source.as_uri(), "exportedPolicy_p.xml")

        staged = staging_dir / "exportedPolicy_p.xml"
        assert result == "exportedPolicy_p.xml"
        assert staged.is_symlink()
        assert staged.read_bytes() == POLICY_XML

    @pytest.mark.asyncio
    async def test_file_source_copied(self, settings, staging_dir, tmp_path):
        """Test file sources are copied when linking is disabled."""
        source = tmp_path / "linux-high.xml"
        source.write_bytes(POLICY_XML)
        settings = settings.model_copy(update={"link_local_sources": False})

        await Downloader(None, settings).download(source.as_uri(), "exportedPolicy_p.xml")

        staged = staging_dir / "exportedPolicy_p.xml"
        assert not staged.is_symlink()
        assert staged.read_bytes() == POLICY_XML

    @pytest.mark.asyncio
    async def test_missing_file_source(self, settings, tmp_path):
        """Test a missing local file."""
        with pytest.raises(TransferError, match="file does not exist"):
            await Downloader(None, settings).download((tmp_path / "nope.xml").as_uri(), "exportedPolicy_p.xml")

    @pytest.mark.asyncio
    async def test_unsupported_scheme(self, settings):
        """Test sources with an unsupported scheme."""
        with pytest.raises(UnsupportedProtocolError):
            await Downloader(None, settings).download("ftp://example.com/p.xml", "exportedPolicy_p.xml")

    @pytest.mark.asyncio
    async def test_empty_source(self, settings):
        """Test an empty source downloads nothing."""
        assert await Downloader(None, settings).download("", "exportedPolicy_p.xml") is None


class TestApplianceDownload:
    """Test cases for Downloader.download_from_endpoint."""

    @pytest.mark.asyncio
    async def test_download_from_local_appliance(self, settings, staging_dir):
        """Test an authenticated download of an exported policy."""
        sender = AiohttpRequestSender()
        try:
            async with TestServer(policy_app()) as server:
                local = settings.model_copy(update={"local_host": "127.0.0.1", "local_port": server.port})
                endpoint = LocalEndpoint(TrustTokenProvider(sender, local))

                result = await Downloader(sender, local).download_from_endpoint(endpoint, "exportedPolicy_42.xml")
        finally:
            await sender.close()

        assert result == "exportedPolicy_42.xml"
        assert (staging_dir / "exportedPolicy_42.xml").read_bytes() == POLICY_XML

    @pytest.mark.asyncio
    async def test_error_status_is_raised(self, settings, staging_dir):
        """Test appliance downloads propagate error statuses."""
        sender = AiohttpRequestSender()
        try:
            async with TestServer(policy_app()) as server:
                local = settings.model_copy(update={"local_host": "127.0.0.1", "local_port": server.port})
                endpoint = LocalEndpoint(TrustTokenProvider(sender, local))

                with pytest.raises(TransferError) as exc_info:
                    await Downloader(sender, local).download_from_endpoint(endpoint, "exportedPolicy_7.xml")
        finally:
            await sender.close()

        assert exc_info.value.details["status"] == 404
        assert not (staging_dir / "exportedPolicy_7.xml").exists()

    @pytest.mark.asyncio
    async def test_unreachable_appliance_is_raised(self, settings):
        """Test appliance downloads propagate connection failures."""
        sender = AiohttpRequestSender()
        local = settings.model_copy(update={"local_host": "127.0.0.1", "local_port": 1})
        endpoint = LocalEndpoint(TrustTokenProvider(sender, local))
        try:
            with pytest.raises(TransportError):
                await Downloader(sender, local).download_from_endpoint(endpoint, "exportedPolicy_42.xml")
        finally:
            await sender.close()


class TestStagedFiles:
    """Test cases for staged file handling."""

    def test_read_and_remove(self, settings, staging_dir):
        """Test reading a staged file deletes it."""
        (staging_dir / "exportedPolicy_42.xml").write_text("<policy/>")

        assert Downloader(None, settings).read_and_remove("exportedPolicy_42.xml") == "<policy/>"
        assert not (staging_dir / "exportedPolicy_42.xml").exists()

    def test_read_missing(self, settings):
        """Test reading a file that is not staged."""
        with pytest.raises(NotFoundError):
            Downloader(None, settings).read_and_remove("exportedPolicy_42.xml")

    def test_remove_is_idempotent(self, settings, staging_dir):
        """Test removing staged files."""
        (staging_dir / "exportedPolicy_42.xml").write_text("<policy/>")
        downloader = Downloader(None, settings)

        downloader.remove("exportedPolicy_42.xml")
        downloader.remove("exportedPolicy_42.xml")

        assert not (staging_dir / "exportedPolicy_42.xml").exists()
