"""
Pytest configuration and fixtures for faasbridge tests.
"""

import base64
import json
import sys
import uuid
from collections import deque
from pathlib import Path
from typing import Any

import httpx
import pytest

# Add the repository root to path for imports
# This allows `from faasbridge.runtime import ...` to work
repo_root = Path(__file__).parent.parent
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))

from faasbridge.runtime import ControlPlaneClient, ControlPlaneConfig  # noqa: E402


def build_payload(
    method: str = "GET",
    path: str = "/",
    *,
    headers: dict[str, Any] | None = None,
    body: bytes = b"",
    host: str | None = "example.com",
    proto: str | None = "https",
    **extra: Any,
) -> dict[str, Any]:
    """Build an invocation payload as the control plane would serialize it."""
    all_headers: dict[str, Any] = {}
    if host is not None:
        all_headers["x-forwarded-host"] = host
    if proto is not None:
        all_headers["x-forwarded-proto"] = proto
    all_headers.update(headers or {})
    payload = {
        "method": method,
        "path": path,
        "headers": all_headers,
        "body": base64.b64encode(body).decode("ascii") if body else "",
    }
    payload.update(extra)
    return payload


def build_event(payload: dict[str, Any]) -> str:
    """Wrap a payload in the control plane's event document."""
    return json.dumps({"body": json.dumps(payload)})


class FakeControlPlane:
    """
    In-memory invocation runtime API served through httpx.MockTransport.

    Once the queued invocations run out, polling answers 500, which the
    runtime treats as fatal. Tests use that to stop the loop.
    """

    def __init__(self):
        self.invocations: deque[tuple[str, str, dict[str, str]]] = deque()
        self.responses: list[tuple[str, dict[str, Any]]] = []
        self.errors: list[tuple[str, dict[str, Any], httpx.Headers]] = []
        self.init_errors: list[dict[str, Any]] = []
        self.requests: list[httpx.Request] = []
        self.accept_status = 202

    def queue(
        self,
        payload: dict[str, Any],
        *,
        invocation_id: str | None = None,
        headers: dict[str, str] | None = None,
    ) -> str:
        invocation_id = invocation_id or str(uuid.uuid4())
        self.invocations.append((invocation_id, build_event(payload), headers or {}))
        return invocation_id

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path.endswith("/invocation/next"):
            if not self.invocations:
                return httpx.Response(500, text="no more invocations")
            invocation_id, event, headers = self.invocations.popleft()
            return httpx.Response(
                200,
                headers={
                    "lambda-runtime-aws-request-id": invocation_id,
                    "lambda-runtime-deadline-ms": "4102444800000",
                    **headers,
                },
                text=event,
            )

        if path.endswith("/init/error"):
            self.init_errors.append(json.loads(request.content))
            return httpx.Response(self.accept_status)

        invocation_id = path.split("/invocation/", 1)[1].split("/", 1)[0]
        if path.endswith("/response"):
            self.responses.append((invocation_id, json.loads(request.content)))
            return httpx.Response(self.accept_status)
        if path.endswith("/error"):
            self.errors.append((invocation_id, json.loads(request.content), request.headers))
            return httpx.Response(self.accept_status)

        return httpx.Response(404)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def client(self, **config: Any) -> ControlPlaneClient:
        config.setdefault("runtime_api", "127.0.0.1:9001")
        config.setdefault("retry_delay", 0.0)
        return ControlPlaneClient(ControlPlaneConfig(**config), transport=self.transport)


@pytest.fixture
def control_plane():
    """Fresh fake control plane."""
    return FakeControlPlane()


@pytest.fixture
def make_payload():
    """Factory for invocation payloads."""
    return build_payload


@pytest.fixture
def make_event():
    """Factory for control-plane event documents."""
    return build_event


@pytest.fixture
def handler_file(tmp_path):
    """Write a handler module into a temporary task root and return its path."""

    def write(source: str, name: str = "handler.py") -> Path:
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(source)
        return path

    return write
