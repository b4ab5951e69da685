# © Copyright 2025-2026, Query.Farm LLC - https://query.farm
# SPDX-License-Identifier: Apache-2.0

"""HTTP transport for toolrpc.

Serves the protocol runtime on a single ``POST`` path through a falcon
ASGI app run by uvicorn.

Responses produced by the listener itself:

- any other method or path: ``404`` with an empty body
- body that is not JSON: ``400`` ``{"error": "Invalid JSON", "message": ...}``
- no runtime transport yet: ``500`` ``{"error": "Transport not initialized", ...}``
- runtime raised: ``500`` ``{"error": "Internal server error", ...}`` unless
  a streaming body was already attached
"""

from toolrpc.http._server import HttpTransport, make_asgi_app
from toolrpc.http._testing import make_test_client, post_json

__all__ = [
    "HttpTransport",
    "make_asgi_app",
    "make_test_client",
    "post_json",
]
