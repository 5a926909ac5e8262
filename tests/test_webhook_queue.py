"""Tests for webhook payload validation and the deployment queue."""

from __future__ import annotations

import json
import threading
import time

import pytest

from shipyard.errors import InvalidWebhookPayload
from shipyard.pipeline.queue import DeploymentQueue, accept_webhook, webhook_handler
from shipyard.pipeline.webhook import DeploymentRequest, parse_webhook_payload


def _payload(**overrides) -> dict:
    deployment = {
        "id": 42,
        "environment": "prod",
        "ref": "aaaa1111",
        "payload": {"package": "client", "workflow_run_id": 987},
    }
    deployment.update(overrides)
    return {"deployment": deployment, "repository": {"full_name": "acme/app"}}


def _request(package: str = "client", run_id: str = "1") -> DeploymentRequest:
    return DeploymentRequest(environment="prod", package=package, run_id=run_id)


# ── Payload validation ───────────────────────────────────────────────────────

class TestParseWebhookPayload:

    def test_valid_object_payload(self):
        request = parse_webhook_payload(_payload())
        assert request == DeploymentRequest(
            deployment_id=42, environment="prod", package="client", ref="aaaa1111", run_id="987",
        )

    def test_string_payload(self):
        raw = json.dumps({"package": "server", "workflow_run_id": "55"})
        request = parse_webhook_payload(_payload(payload=raw))
        assert request.package == "server"
        assert request.run_id == "55"

    def test_label_environment(self):
        request = parse_webhook_payload(_payload(environment="staging-client"))
        assert request.environment == "staging"
        assert request.target.service_name == "client-staging"

    def test_skip_webhook(self):
        assert parse_webhook_payload(_payload(payload={"skip_webhook": True})) is None
        assert parse_webhook_payload(_payload(payload='{"skip_webhook": true}')) is None

    @pytest.mark.parametrize(
        "payload, message",
        [
            ({"repository": {}}, "Missing deployment"),
            ({"deployment": {"environment": "prod", "payload": {}}}, "Missing repository"),
            (_payload(environment=""), "Missing environment"),
            (_payload(payload={"workflow_run_id": 1}), "Missing package"),
            (_payload(payload={"package": "client"}), "Missing workflow_run_id"),
            (_payload(environment="qa"), "Invalid environment"),
            (_payload(payload={"package": "worker", "workflow_run_id": 1}), "Invalid package"),
            (_payload(payload="{broken"), "Invalid JSON"),
            (_payload(environment="prod-server"), "does not match"),
        ],
    )
    def test_invalid(self, payload, message):
        with pytest.raises(InvalidWebhookPayload, match=message):
            parse_webhook_payload(payload)


# ── DeploymentQueue ──────────────────────────────────────────────────────────

class TestDeploymentQueue:

    def test_fifo_one_at_a_time(self):
        seen: list[str] = []
        running = 0
        overlap = False
        lock = threading.Lock()

        def handler(request: DeploymentRequest) -> None:
            nonlocal running, overlap
            with lock:
                running += 1
                overlap = overlap or running > 1
            time.sleep(0.01)
            seen.append(request.run_id)
            with lock:
                running -= 1

        queue = DeploymentQueue(handler)
        for run_id in ("1", "2", "3", "4"):
            queue.enqueue(_request(run_id=run_id))
        queue.join()
        queue.stop(timeout=5)

        assert seen == ["1", "2", "3", "4"]
        assert overlap is False
        assert queue.processed == 4
        assert queue.pending == 0

    def test_failure_does_not_stop_worker(self):
        seen: list[str] = []

        def handler(request: DeploymentRequest) -> None:
            if request.run_id == "bad":
                raise RuntimeError("boom")
            seen.append(request.run_id)

        queue = DeploymentQueue(handler)
        queue.enqueue(_request(run_id="bad"))
        queue.enqueue(_request(run_id="good"))
        queue.join()
        queue.stop(timeout=5)

        assert seen == ["good"]
        assert (queue.processed, queue.failed) == (1, 1)
        assert not queue.is_running

    def test_webhook_handler_calls_engine(self):
        calls: list[tuple] = []

        class Engine:
            def deploy_from_run(self, run_id, package, **kwargs):
                calls.append((run_id, package, kwargs))

        webhook_handler(Engine())(DeploymentRequest(
            deployment_id=7, environment="staging", package="server", run_id="99",
        ))
        assert calls == [(
            "99", "server", {"environment": "staging", "deployment_id": 7, "trigger": "webhook"},
        )]

    def test_accept_webhook(self):
        queued: list[DeploymentRequest] = []
        queue = DeploymentQueue(queued.append)

        assert accept_webhook(_payload(payload={"skip_webhook": True}), queue) is None
        request = accept_webhook(_payload(), queue)
        queue.join()
        queue.stop(timeout=5)
        assert queued == [request]

    def test_accept_webhook_reports_invalid_payload(self):
        statuses: list[tuple] = []

        class GitHub:
            configured = True

            def update_status(self, deployment_id, state, description=""):
                statuses.append((deployment_id, state))

        queue = DeploymentQueue(lambda request: None)
        with pytest.raises(InvalidWebhookPayload):
            accept_webhook(_payload(environment="qa"), queue, github=GitHub())
        assert statuses == [(42, "failure")]
        assert queue.pending == 0
