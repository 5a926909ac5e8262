"""DeploymentQueue — FIFO, single-worker execution of webhook deployments."""

from __future__ import annotations

import logging
import queue
import threading
from typing import Any, Callable

import requests

from shipyard.errors import InvalidWebhookPayload
from shipyard.notify.github import GitHubClient
from shipyard.pipeline.promotion import PromotionEngine
from shipyard.pipeline.webhook import DeploymentRequest, parse_webhook_payload

logger = logging.getLogger(__name__)

_STOP = object()


class DeploymentQueue:
    """Run queued deployment requests one at a time, in arrival order.

    A daemon worker thread is started on the first :meth:`enqueue`.  A
    failing request is logged and counted; the worker moves on to the
    next one.

    Parameters
    ----------
    handler:
        Called with each :class:`DeploymentRequest`.
    """

    def __init__(self, handler: Callable[[DeploymentRequest], Any]) -> None:
        self._handler = handler
        self._queue: queue.Queue[Any] = queue.Queue()
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()
        self.processed = 0
        self.failed = 0

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def pending(self) -> int:
        """Requests waiting (not counting the one being executed)."""
        return self._queue.qsize()

    def start(self) -> None:
        with self._lock:
            if self.is_running:
                return
            self._thread = threading.Thread(
                target=self._work, name="shipyard-deploy-queue", daemon=True,
            )
            self._thread.start()

    def enqueue(self, request: DeploymentRequest) -> int:
        """Queue *request*; returns the number of waiting requests."""
        self._queue.put(request)
        self.start()
        logger.info(
            "Queued deployment of %s to %s (run %s), %d waiting",
            request.package, request.environment, request.run_id, self.pending,
        )
        return self.pending

    def join(self) -> None:
        """Block until every queued request has been processed."""
        self._queue.join()

    def stop(self, timeout: float | None = None) -> None:
        """Finish queued work, then stop the worker."""
        thread = self._thread
        if thread is None or not thread.is_alive():
            return
        self._queue.put(_STOP)
        thread.join(timeout)

    def _work(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                logger.info("Processing deployment of %s to %s", item.package, item.environment)
                self._handler(item)
                self.processed += 1
            except Exception as exc:
                self.failed += 1
                logger.error("Deployment of %s to %s failed: %s", item.package, item.environment, exc)
            finally:
                self._queue.task_done()


def webhook_handler(engine: PromotionEngine) -> Callable[[DeploymentRequest], Any]:
    """Handler that deploys a request's CI run artifact through *engine*."""

    def handle(request: DeploymentRequest) -> Any:
        return engine.deploy_from_run(
            request.run_id,
            request.package,
            environment=request.environment,
            deployment_id=request.deployment_id,
            trigger="webhook",
        )

    return handle


def accept_webhook(
    payload: dict[str, Any],
    deployments: DeploymentQueue,
    github: GitHubClient | None = None,
) -> DeploymentRequest | None:
    """Validate a webhook event and queue it.

    Invalid payloads are reported as a failed GitHub deployment status
    (when possible) and re-raised for the HTTP layer to answer.
    """
    try:
        request = parse_webhook_payload(payload)
    except InvalidWebhookPayload as exc:
        logger.error("Invalid deployment webhook payload: %s", exc.message)
        deployment = payload.get("deployment") if isinstance(payload, dict) else None
        deployment_id = deployment.get("id") if isinstance(deployment, dict) else None
        if deployment_id and github is not None and github.configured:
            try:
                github.update_status(
                    deployment_id, "failure", f"Invalid deployment payload: {exc.message}",
                )
            except requests.RequestException as status_exc:
                logger.warning("Failed to update deployment status: %s", status_exc)
        raise
    if request is not None:
        deployments.enqueue(request)
    return request
