"""HTTP node: performs one outbound request with httpx."""

from __future__ import annotations

import base64
import json
import logging
from typing import Any

import httpx

from flowchord.core.types import Node, NodeOutcome, NodeType
from flowchord.errors.exceptions import NodeExecutionError
from flowchord.nodes.base import BaseNodeHandler, NodeContext

logger = logging.getLogger(__name__)

BODY_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})


def _auth_headers(auth_type: str | None, token: str) -> dict[str, str]:
    if not token:
        return {}
    if auth_type == "bearer":
        return {"Authorization": f"Bearer {token}"}
    if auth_type == "basic":
        return {"Authorization": "Basic " + base64.b64encode(token.encode()).decode()}
    if auth_type == "api-key":
        return {"X-API-Key": token}
    return {}


def _response_data(response: httpx.Response) -> Any:
    try:
        return response.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return response.text


class HTTPNodeHandler(BaseNodeHandler):
    """Sends a request built from interpolated node fields. Never retries."""

    node_type = NodeType.HTTP

    async def execute(self, node: Node, ctx: NodeContext) -> NodeOutcome:
        data = node.data
        url = ctx.interpolate(data.get("httpUrl") or data.get("url") or "").strip()
        if not url:
            raise NodeExecutionError("HTTP node requires httpUrl", node_id=node.id)
        method = str(data.get("httpMethod") or "GET").upper()

        headers: dict[str, str] = {}
        for header in data.get("httpHeaders") or []:
            key = header.get("key")
            if key and header.get("value") is not None:
                headers[key] = ctx.interpolate(header["value"])
        headers.update(
            _auth_headers(data.get("httpAuthType"), ctx.interpolate(data.get("httpAuthToken") or ""))
        )

        content: str | None = None
        json_body: Any = None
        raw_body = data.get("httpBody")
        if method in BODY_METHODS and raw_body:
            body = ctx.interpolate(raw_body) if isinstance(raw_body, str) else ctx.interpolate_value(raw_body)
            if isinstance(body, str):
                try:
                    json_body = json.loads(body)
                except json.JSONDecodeError:
                    content = body
            else:
                json_body = body

        timeout = float(data.get("httpTimeout") or ctx.config.http_timeout)
        logger.debug("HTTP %s %s", method, url)

        try:
            async with ctx.services.http_client_factory() as client:
                response = await client.request(
                    method,
                    url,
                    headers=headers,
                    content=content,
                    json=json_body if content is None and json_body is not None else None,
                    timeout=timeout,
                )
        except httpx.TimeoutException as e:
            raise NodeExecutionError(
                f"HTTP request failed: timed out after {timeout}s", node_id=node.id
            ) from e
        except httpx.HTTPError as e:
            raise NodeExecutionError(f"HTTP request failed: {e}", node_id=node.id) from e

        if not response.is_success:
            raise NodeExecutionError(
                f"HTTP {response.status_code}: {response.reason_phrase}", node_id=node.id
            )

        return NodeOutcome(
            output={
                "status": response.status_code,
                "statusText": response.reason_phrase,
                "headers": dict(response.headers),
                "data": _response_data(response),
                "url": url,
                "method": method,
            }
        )
