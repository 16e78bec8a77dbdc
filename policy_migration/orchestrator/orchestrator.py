"""
Migration orchestrator for moving security policies between appliances.

This module provides the MigrationOrchestrator class that accepts
migration requests, records them in the registry and drives each accepted
migration through its stages in a detached task:

    appliance source: EXPORTING -> DOWNLOADING -> UPLOADING -> IMPORTING -> apply
    URL source:       DOWNLOADING -> UPLOADING -> IMPORTING -> apply

A failing stage moves the registry entry to ERROR and ends the migration.
A migration that completes is removed from the registry; the imported
policy is reported from the live appliance query from then on.
"""

import asyncio
import logging
import time
from typing import Any, Callable, Coroutine, List, Optional, Set
from urllib.parse import urlparse

from policy_migration.appliance.client import PolicyClient, staged_file_name
from policy_migration.core.exceptions import (
    ConflictError,
    NotFoundError,
    PolicyMigrationError,
    ProtocolShapeError,
    TransferError,
    UnsupportedProtocolError,
    ValidationError,
)
from policy_migration.endpoints.base import RemoteEndpoint
from policy_migration.endpoints.credentials import TrustTokenProvider
from policy_migration.endpoints.resolver import EndpointResolver
from policy_migration.models.config import MigrationSettings
from policy_migration.models.policy import MigrationRecord, PolicyState
from policy_migration.tasks.poller import RemoteTaskPoller
from policy_migration.transfer.download import Downloader
from policy_migration.transfer.factory import TransferMethodFactory
from policy_migration.transfer.upload import ChunkedUploader
from policy_migration.transport.sender import AiohttpRequestSender
from policy_migration.utils.logging import MigrationLogger

from .registry import MigrationKey, MigrationRegistry

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[MigrationKey, Optional[MigrationRecord]], None]


class MigrationRun:
    """
    Progress of one accepted migration.

    Tracks the current stage for logging and mirrors tracked stages into
    the registry entry. The run holds the record it last wrote, so it
    leaves alone an entry that was deleted and registered again by a
    later request for the same key.
    """

    def __init__(self, key: MigrationKey, record: MigrationRecord, orchestrator: "MigrationOrchestrator"):
        self.key = key
        self.record: Optional[MigrationRecord] = record
        self.stage = PolicyState.REQUESTED.value
        self.log = MigrationLogger(str(key))
        self._orchestrator = orchestrator
        self._stage_started: Optional[float] = None

    def enter(self, stage: str, state: Optional[PolicyState] = None) -> None:
        """Start a stage; ``state`` is written to the registry when given."""
        self._close_stage()
        self.stage = stage
        self._stage_started = time.monotonic()
        self.log.stage_start(stage)
        if state is not None:
            self._orchestrator._set_state(self, state)

    def fail(self, error: Exception) -> None:
        """Record the current stage as failed and the migration as ERROR."""
        code = error.code if isinstance(error, PolicyMigrationError) else error.__class__.__name__
        self.log.stage_failed(self.stage, str(error), error_code=code)
        self._orchestrator._set_state(self, PolicyState.ERROR)

    def complete(self) -> None:
        """Finish the last stage and drop the registry entry."""
        self._close_stage()
        self._orchestrator._clear(self)
        self.log.info(f"policy {self.key.policy_id} imported and applied on {self.key.host}:{self.key.port}")

    def _close_stage(self) -> None:
        if self._stage_started is not None:
            self.log.stage_complete(self.stage, time.monotonic() - self._stage_started)
            self._stage_started = None


class MigrationOrchestrator:
    """
    Coordinates policy migrations.

    Requests are validated and recorded synchronously; the pipeline for an
    accepted request runs detached. Callers observe progress through the
    registry.
    """

    def __init__(
        self,
        resolver: EndpointResolver,
        client: PolicyClient,
        downloader: Downloader,
        uploader: ChunkedUploader,
        registry: Optional[MigrationRegistry] = None,
        sender: Optional[AiohttpRequestSender] = None,
        poller: Optional[RemoteTaskPoller] = None
    ):
        """
        Initialize the migration orchestrator.

        Args:
            resolver: Resolves target identifiers to endpoints
            client: Policy operations on appliances
            downloader: Fetches policy files into the staging directory
            uploader: Sends staged policy files to appliances
            registry: Registry of in-flight migrations (optional)
            sender: Transport released by ``close`` (optional)
            poller: Task poller whose cleanups ``close`` waits for (optional)
        """
        self.resolver = resolver
        self.client = client
        self.downloader = downloader
        self.uploader = uploader
        self.registry = registry if registry is not None else MigrationRegistry()
        self.sender = sender
        self.poller = poller

        self._tasks: Set[asyncio.Task] = set()
        self._progress_callbacks: List[ProgressCallback] = []

    @classmethod
    def from_settings(cls, settings: MigrationSettings) -> "MigrationOrchestrator":
        """Wire the default aiohttp-based components from settings."""
        sender = AiohttpRequestSender(
            verify_ssl=settings.verify_ssl,
            timeout=settings.request_timeout,
        )
        tokens = TrustTokenProvider(sender, settings)
        poller = RemoteTaskPoller(
            sender,
            interval=settings.poll_interval,
            timeout=settings.task_timeout,
        )
        return cls(
            resolver=EndpointResolver(sender, settings, tokens),
            client=PolicyClient(sender, poller),
            downloader=Downloader(sender, settings),
            uploader=ChunkedUploader(sender, settings),
            sender=sender,
            poller=poller,
        )

    def add_progress_callback(self, callback: ProgressCallback):
        """Add a callback notified with the key and record on every state change."""
        self._progress_callbacks.append(callback)

    def remove_progress_callback(self, callback: ProgressCallback):
        """Remove a progress callback."""
        if callback in self._progress_callbacks:
            self._progress_callbacks.remove(callback)

    def _notify_progress(self, key: MigrationKey, record: Optional[MigrationRecord]):
        for callback in self._progress_callbacks:
            try:
                callback(key, record)
            except Exception as e:
                logger.warning(f"Progress callback failed: {e}")

    def _set_state(self, run: MigrationRun, state: PolicyState) -> None:
        if run.record is None:
            return
        record = self.registry.update_state(run.key, state, owner=run.record)
        if record is None:
            run.record = None
            return
        run.record = record
        self._notify_progress(run.key, record)

    def _clear(self, run: MigrationRun) -> None:
        if run.record is not None and self.registry.remove(run.key, owner=run.record) is not None:
            self._notify_progress(run.key, None)
        run.record = None

    async def migrate_between_devices(
        self,
        source: Optional[str],
        target: Optional[str],
        policy_id: Optional[str] = None,
        policy_name: Optional[str] = None,
        target_policy_name: Optional[str] = None
    ) -> MigrationRecord:
        """
        Start migrating a policy from one appliance to another.

        Args:
            source: Source host or device UUID; None for the local appliance
            target: Target host or device UUID; None for the local appliance
            policy_id: Id of the source policy
            policy_name: Name of the source policy, used when no id is given
            target_policy_name: Name of the imported policy; defaults to the source name

        Returns:
            The REQUESTED record registered for the migration

        Raises:
            ValidationError: If neither a policy id nor a name is given
            NotTrustedError: If source or target is not a trusted device
            NotFoundError: If the source policy does not exist
            ConflictError: If the policy is already on the target or being migrated there
        """
        if not policy_id and not policy_name:
            raise ValidationError("you must supply either a policyName or policyId to migrate")

        source_endpoint = await self.resolver.resolve(source)
        source_policy = self._match(
            await self.client.list_policies(source_endpoint), policy_id, policy_name
        )
        if source_policy is None:
            raise NotFoundError(
                f"source policy could not be found on {source_endpoint.host}:{source_endpoint.port}"
            )

        target_endpoint = await self.resolver.resolve(target)
        if target_endpoint != source_endpoint:
            for policy in await self.client.list_policies(target_endpoint):
                if policy.id == source_policy.id:
                    raise ConflictError(
                        f"source policy {source_policy.id} is already on "
                        f"{target_endpoint.host}:{target_endpoint.port}"
                    )

        key = MigrationKey(target_endpoint.host, target_endpoint.port, source_policy.id)
        record = self.registry.register(key, source_policy.with_state(PolicyState.REQUESTED))
        self._notify_progress(key, record)

        self._spawn(self._migrate_from_device(
            MigrationRun(key, record, self),
            source_endpoint,
            target_endpoint,
            source_policy.id,
            target_policy_name or source_policy.name,
        ))
        return record

    async def migrate_from_url(
        self,
        url: str,
        target: Optional[str],
        target_policy_name: Optional[str]
    ) -> MigrationRecord:
        """
        Start importing a policy file from a URL onto an appliance.

        The registry entry is keyed, and identified, by the target policy name.

        Args:
            url: ``file:``, ``http:`` or ``https:`` URL of the policy file
            target: Target host or device UUID; None for the local appliance
            target_policy_name: Name of the imported policy

        Returns:
            The REQUESTED record registered for the migration

        Raises:
            ValidationError: If no target policy name is given
            UnsupportedProtocolError: If the URL scheme is not supported
            NotTrustedError: If the target is not a trusted device
            ConflictError: If the same name is being migrated to the target
        """
        if not target_policy_name:
            raise ValidationError("must supply targetPolicyName if using URL as the source of the policy")

        scheme = urlparse(url).scheme.lower()
        if scheme not in TransferMethodFactory.get_available_methods():
            raise UnsupportedProtocolError(f"policy file URL protocol {scheme or url!r} is not supported")

        target_endpoint = await self.resolver.resolve(target)
        key = MigrationKey(target_endpoint.host, target_endpoint.port, target_policy_name)
        record = self.registry.register(
            key, MigrationRecord(id=target_policy_name, name=target_policy_name)
        )
        self._notify_progress(key, record)

        self._spawn(self._migrate_from_url(MigrationRun(key, record, self), url, target_endpoint, target_policy_name))
        return record

    @staticmethod
    def _match(
        policies: List[MigrationRecord],
        policy_id: Optional[str],
        policy_name: Optional[str]
    ) -> Optional[MigrationRecord]:
        """Last policy matching the id, or the name when no id is given."""
        match = None
        for policy in policies:
            if policy_id and policy.id == str(policy_id):
                match = policy
            elif not policy_id and policy_name and policy.name == policy_name:
                match = policy
        return match

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(self, run: MigrationRun, pipeline: Coroutine[Any, Any, None]) -> None:
        try:
            await pipeline
        except PolicyMigrationError as e:
            run.fail(e)
        except Exception as e:
            logger.exception(f"unexpected error migrating {run.key}")
            run.fail(e)
        else:
            run.complete()

    async def _migrate_from_device(
        self,
        run: MigrationRun,
        source: RemoteEndpoint,
        target: RemoteEndpoint,
        policy_id: str,
        target_policy_name: str
    ) -> None:
        async def pipeline():
            run.enter("export", PolicyState.EXPORTING)
            file_name = await self.client.export_policy(source, policy_id)

            run.enter("download", PolicyState.DOWNLOADING)
            await self.downloader.download_from_endpoint(source, file_name)

            await self._upload_import_apply(run, target, policy_id, file_name, target_policy_name)

        await self._run(run, pipeline())

    async def _migrate_from_url(
        self,
        run: MigrationRun,
        url: str,
        target: RemoteEndpoint,
        target_policy_name: str
    ) -> None:
        async def pipeline():
            file_name = staged_file_name(target_policy_name)

            run.enter("download", PolicyState.DOWNLOADING)
            if await self.downloader.download(url, file_name) is None:
                raise TransferError(f"policy file {file_name} could not be downloaded from {url}")

            await self._upload_import_apply(run, target, target_policy_name, file_name, target_policy_name)

        await self._run(run, pipeline())

    async def _upload_import_apply(
        self,
        run: MigrationRun,
        target: RemoteEndpoint,
        policy_id: str,
        file_name: str,
        target_policy_name: str
    ) -> None:
        run.enter("upload", PolicyState.UPLOADING)
        try:
            await self.uploader.upload(target, file_name)
        finally:
            self.downloader.remove(file_name)

        run.enter("import", PolicyState.IMPORTING)
        imported_id = await self.client.import_policy(target, policy_id, target_policy_name)
        if not imported_id:
            raise ProtocolShapeError(
                f"import of policy {policy_id} on {target.host}:{target.port} did not return a policy reference"
            )

        run.enter("apply")
        await self.client.apply_policy(target, imported_id)

    @property
    def active_migrations(self) -> int:
        """Number of pipelines still running."""
        return len(self._tasks)

    async def wait_idle(self) -> None:
        """Wait until every detached pipeline has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        """Wait for running pipelines and task cleanups, then release the transport."""
        await self.wait_idle()
        if self.poller is not None:
            await self.poller.drain()
        if self.sender is not None:
            await self.sender.close()
