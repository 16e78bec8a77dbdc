"""
Pytest configuration and fixtures for the policy migration tests.

Provides settings pointing at a temporary staging directory, endpoints for
the local appliance and a trusted device, a scripted request sender and a
fake clock for the task poller.
"""

from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import pytest

from policy_migration.core.exceptions import TransportError
from policy_migration.endpoints.base import LocalEndpoint, TrustedEndpoint
from policy_migration.endpoints.credentials import TrustTokenProvider
from policy_migration.models.config import MigrationSettings
from policy_migration.models.policy import MigrationRecord, PolicyState

TOKEN_QUERY = "em_server_ip=10.0.0.1&em_server_auth_token=secret"


class ScriptedSender:
    """
    RemoteRequestSender returning canned responses.

    Responses are registered per method and URL (query string ignored). A
    list is consumed one item per call, its last item repeating; exceptions
    are raised; callables are invoked with the call details.
    """

    def __init__(self):
        self.routes: Dict[Tuple[str, str], Any] = {}
        self.calls: List[Dict[str, Any]] = []

    def route(self, method: str, url: str, response: Any) -> None:
        self.routes[(method.upper(), url)] = response

    def calls_to(self, method: str, url: Optional[str] = None) -> List[Dict[str, Any]]:
        return [
            call for call in self.calls
            if call["method"] == method.upper() and (url is None or call["url"] == url)
        ]

    async def send(self, method, url, headers=None, params=None, body=None):
        call = {"method": method.upper(), "url": url, "headers": headers, "params": params, "body": body}
        self.calls.append(call)

        key = (method.upper(), url.split("?")[0])
        if key not in self.routes:
            raise TransportError(f"{method} {url} returned 404: no route", status=404)

        response = self.routes[key]
        if isinstance(response, list):
            response = response.pop(0) if len(response) > 1 else response[0]
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response(call)
        return response


class FakeClock:
    """Monotonic clock advanced only by its own sleep."""

    def __init__(self):
        self.now = 0.0
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def staging_dir(tmp_path: Path) -> Path:
    """Temporary staging directory."""
    path = tmp_path / "staging"
    path.mkdir()
    return path


@pytest.fixture
def settings(staging_dir: Path) -> MigrationSettings:
    """Settings with a temporary staging directory and a small chunk size."""
    return MigrationSettings(
        staging_directory=staging_dir,
        chunk_size=10,
        poll_interval=2.0,
        task_timeout=6.0,
    )


@pytest.fixture
def sender() -> ScriptedSender:
    """Scripted request sender."""
    return ScriptedSender()


@pytest.fixture
def fake_clock() -> FakeClock:
    """Fake clock for the task poller."""
    return FakeClock()


@pytest.fixture
def tokens(sender: ScriptedSender, settings: MigrationSettings) -> TrustTokenProvider:
    """Token provider whose trust authority always issues a query token."""
    sender.route("POST", settings.token_url, {"queryParam": TOKEN_QUERY})
    return TrustTokenProvider(sender, settings)


@pytest.fixture
def local_endpoint(tokens: TrustTokenProvider) -> LocalEndpoint:
    """The local appliance."""
    return LocalEndpoint(tokens)


@pytest.fixture
def remote_endpoint(tokens: TrustTokenProvider) -> TrustedEndpoint:
    """A trusted remote device."""
    return TrustedEndpoint("10.0.0.2", 443, tokens, uuid="uuid-b", state="ACTIVE")


@pytest.fixture
def source_endpoint(tokens: TrustTokenProvider) -> TrustedEndpoint:
    """A second trusted remote device, used as migration source."""
    return TrustedEndpoint("10.0.0.3", 443, tokens, uuid="uuid-a", state="ACTIVE")


@pytest.fixture
def sample_policy() -> MigrationRecord:
    """A live policy on a source device."""
    return MigrationRecord(
        id="42",
        name="linux-high",
        enforcement_mode="blocking",
        state=PolicyState.AVAILABLE,
        path="/Common/linux-high",
    )
