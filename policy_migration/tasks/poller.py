"""
Remote task polling.

Appliance operations such as export, import and apply are asynchronous:
submitting one returns a task id whose status must be polled until it
reaches a terminal state. Finished tasks are deleted on a best-effort basis.
"""

import asyncio
import json
import logging
import posixpath
import time
from typing import Any, Awaitable, Callable, Dict, Optional, Set
from urllib.parse import urlparse

from policy_migration.core.exceptions import (
    PolicyMigrationError,
    ProtocolShapeError,
    TaskFailedError,
    TaskTimeoutError,
)
from policy_migration.endpoints.base import RemoteEndpoint
from policy_migration.models.policy import TaskResult, TaskStatus
from policy_migration.transport.sender import RemoteRequestSender

logger = logging.getLogger(__name__)

TASK_PATH = "mgmt/tm/asm/tasks/{kind}/{task_id}"


def _describe(body: Any) -> str:
    try:
        return json.dumps(body)
    except (TypeError, ValueError):
        return repr(body)


def extract_reference(body: Dict[str, Any], key: str = "policyReference") -> Optional[str]:
    """Trailing path segment of ``result.<key>.link`` in a task status body."""
    result = body.get("result")
    if not isinstance(result, dict):
        return None
    reference = result.get(key)
    if not isinstance(reference, dict) or not reference.get("link"):
        return None
    return posixpath.basename(urlparse(reference["link"]).path.rstrip("/")) or None


class RemoteTaskPoller:
    """
    Submits an asynchronous operation and polls it until it is terminal.

    The first poll is issued immediately after submission; later polls wait
    ``interval`` seconds. The deadline counts from submission time.
    """

    def __init__(
        self,
        sender: RemoteRequestSender,
        interval: float = 2.0,
        timeout: float = 120.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
    ):
        """
        Initialize the poller.

        Args:
            sender: Transport used for status and cleanup requests
            interval: Seconds between polls
            timeout: Default seconds from submission before giving up
            clock: Monotonic clock, injectable for tests
            sleep: Delay coroutine, injectable for tests
        """
        self.sender = sender
        self.interval = interval
        self.timeout = timeout
        self._clock = clock
        self._sleep = sleep
        self._cleanup_tasks: Set[asyncio.Task] = set()

    async def submit_and_await(
        self,
        endpoint: RemoteEndpoint,
        kind: str,
        submit: Callable[[], Awaitable[Any]],
        timeout: Optional[float] = None
    ) -> TaskResult:
        """
        Submit a task and wait for it to finish.

        Args:
            endpoint: Appliance that owns the task
            kind: Task collection name, e.g. ``export-policy``
            submit: Coroutine function issuing the submit request
            timeout: Seconds from submission before TaskTimeoutError

        Returns:
            TaskResult with the referenced object id when the task reports one

        Raises:
            ProtocolShapeError: If the submit or status response lacks expected fields
            TaskFailedError: If the task reports FAILURE
            TaskTimeoutError: If the deadline passes before a terminal status
            TransportError: If any request fails
        """
        deadline = self._clock() + (timeout if timeout is not None else self.timeout)

        task = await submit()
        if not isinstance(task, dict) or "id" not in task:
            raise ProtocolShapeError(
                f"{kind} request did not return a task ID: {_describe(task)}", body=task
            )
        task_id = str(task["id"])
        path = TASK_PATH.format(kind=kind, task_id=task_id)
        logger.info(f"{kind} task {task_id} submitted to {endpoint.host}:{endpoint.port}")

        while True:
            body = await endpoint.request(self.sender, "GET", path)
            status = body.get("status") if isinstance(body, dict) else None
            if status is None:
                raise ProtocolShapeError(
                    f"{kind} task {task_id} status response has no status: {_describe(body)}",
                    body=body,
                )

            if status == TaskStatus.FINISHED.value:
                self._schedule_cleanup(endpoint, path)
                return TaskResult(task_id=task_id, reference=extract_reference(body), body=body)

            if status == TaskStatus.FAILURE.value:
                raise TaskFailedError(
                    f"{kind} task {task_id} failed returning {_describe(body)}",
                    task_id=task_id,
                    body=body,
                )

            await self._sleep(self.interval)
            if self._clock() >= deadline:
                raise TaskTimeoutError(
                    f"{kind} task {task_id} did not reach {TaskStatus.FINISHED.value} status. "
                    f"Instead returned: {_describe(body)}",
                    task_id=task_id,
                    body=body,
                )

    def _schedule_cleanup(self, endpoint: RemoteEndpoint, path: str) -> None:
        task = asyncio.ensure_future(self._delete_task(endpoint, path))
        self._cleanup_tasks.add(task)
        task.add_done_callback(self._cleanup_tasks.discard)

    async def _delete_task(self, endpoint: RemoteEndpoint, path: str) -> None:
        try:
            await endpoint.request(self.sender, "DELETE", path)
        except PolicyMigrationError as e:
            logger.warning(f"could not delete task {path} on {endpoint.host}: {e.message}")

    async def drain(self) -> None:
        """Wait for outstanding task cleanups."""
        if self._cleanup_tasks:
            await asyncio.gather(*list(self._cleanup_tasks))
