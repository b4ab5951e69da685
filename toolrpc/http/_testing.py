# © Copyright 2025-2026, Query.Farm LLC - https://query.farm
# SPDX-License-Identifier: Apache-2.0

"""In-process test client for the HTTP transport.

``make_test_client`` wraps the transport's ASGI app in
``falcon.testing.TestClient``, so requests reach the listener logic
without binding a socket.
"""

from __future__ import annotations

import json
from typing import Any

import falcon.testing

from ._server import HttpTransport


def make_test_client(transport: HttpTransport) -> falcon.testing.TestClient:
    """Return a falcon test client bound to *transport*'s ASGI app."""
    return falcon.testing.TestClient(transport.app)


def post_json(client: falcon.testing.TestClient, path: str, payload: Any) -> falcon.testing.Result:
    """POST *payload* serialized as JSON to *path*."""
    return client.simulate_post(path, body=json.dumps(payload), headers={"Content-Type": "application/json"})
