"""Mesh RPC client.

One POST per tool call to ``{mesh_url}/mcp/{connection_id}`` carrying a
JSON-RPC ``tools/call`` request. The mesh answers either with a single
JSON document or with an event stream, in which case only the last
``data:`` frame counts.

Decoding precedence for the ``result`` member:

1. ``structuredContent``, returned verbatim
2. the first ``image`` content item, as a ``data:`` URL
3. the first ``text`` content item, parsed as JSON when possible;
   text starting with ``MCP error`` raises :class:`RemoteToolError`

Calls are never retried: remote tools may have side effects.
"""

from __future__ import annotations

import itertools
import json
import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

import httpx

from meshpilot.core.errors import (
    RemoteToolError,
    RpcParseError,
    RpcTransportError,
    StaleCredentialError,
)
from meshpilot.tools.base import (
    ErrorResult,
    ImageResult,
    StructuredResult,
    TextResult,
)

if TYPE_CHECKING:
    from meshpilot.mesh.context import MeshContext
    from meshpilot.tools.base import ToolResult

logger = logging.getLogger(__name__)

ERROR_MARKER = "MCP error"
_LOG_PREVIEW = 500


def last_event_data(body: str) -> str | None:
    """Return the payload of the last event carrying data in an event stream.

    Events are separated by blank lines; multiple ``data:`` lines within
    one event are joined with newlines.
    """
    last: str | None = None
    current: list[str] = []
    for raw_line in body.splitlines():
        line = raw_line.rstrip("\r")
        if not line:
            if current:
                last = "\n".join(current)
                current = []
            continue
        if line.startswith("data:"):
            data = line[5:]
            current.append(data[1:] if data.startswith(" ") else data)
    if current:
        last = "\n".join(current)
    return last


def parse_body(connection_id: str, content_type: str, body: str) -> dict[str, Any]:
    """Decode a response body into the JSON-RPC envelope.

    Raises:
        RpcParseError: If the body is empty, not JSON, or not an object.
    """
    if "text/event-stream" in content_type:
        payload = last_event_data(body)
        if payload is None:
            raise RpcParseError(connection_id, "Empty event stream from mesh")
    else:
        payload = body

    try:
        envelope = json.loads(payload)
    except json.JSONDecodeError as e:
        logger.debug("Unparseable mesh response: %s", payload[:200])
        raise RpcParseError(connection_id, f"Malformed response body: {e}") from e

    if not isinstance(envelope, dict):
        raise RpcParseError(connection_id, "Response is not a JSON-RPC object")
    return envelope


def _image_data_url(item: Mapping[str, Any]) -> ImageResult:
    mime_type = str(item.get("mimeType") or item.get("mime_type") or "image/png")
    data = str(item.get("data") or "")
    if data.startswith("data:"):
        return ImageResult(mime_type=mime_type, data_url=data)
    return ImageResult(mime_type=mime_type, data_url=f"data:{mime_type};base64,{data}")


def decode_result(
    connection_id: str,
    tool_name: str,
    envelope: Mapping[str, Any],
) -> ToolResult:
    """Turn a JSON-RPC envelope into a single ToolResult.

    Raises:
        RemoteToolError: On a JSON-RPC error member or an error-marker text.
    """
    error = envelope.get("error")
    if error:
        message = error.get("message") if isinstance(error, Mapping) else str(error)
        raise RemoteToolError(tool_name, f"Mesh tool error: {message}")

    result = envelope.get("result")
    if not isinstance(result, Mapping):
        return StructuredResult(result)

    items = result.get("content")
    if not isinstance(items, list):
        items = []
    content = [i for i in items if isinstance(i, Mapping)]
    texts = [
        str(i["text"])
        for i in content
        if i.get("type") == "text" and i.get("text") is not None
    ]
    text = texts[0] if texts else None

    decoded: ToolResult
    if result.get("structuredContent") is not None:
        decoded = StructuredResult(result["structuredContent"])
    else:
        image = next((i for i in content if i.get("type") == "image"), None)
        if image is not None:
            decoded = _image_data_url(image)
        elif text is not None:
            if text.startswith(ERROR_MARKER):
                raise RemoteToolError(tool_name, text)
            try:
                decoded = StructuredResult(json.loads(text))
            except json.JSONDecodeError:
                decoded = TextResult(text)
        else:
            decoded = StructuredResult(None)

    if result.get("isError"):
        message = text or f"{tool_name} reported an error"
        return ErrorResult(message=message, detail=_detail(decoded))
    return decoded


def _detail(result: ToolResult) -> Any:
    if isinstance(result, StructuredResult):
        return result.value
    if isinstance(result, TextResult):
        return result.text
    return None


class MeshRpcClient:
    """Calls tools on mesh connections.

    The bearer token is read from the :class:`MeshContext` on every call
    and is never stored by the client.
    """

    def __init__(
        self,
        context: MeshContext,
        *,
        timeout: float = 120.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._context = context
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._ids = itertools.count(1)

    @property
    def context(self) -> MeshContext:
        return self._context

    async def __aenter__(self) -> MeshRpcClient:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def call_tool(
        self,
        connection_id: str,
        tool_name: str,
        arguments: Mapping[str, Any] | None = None,
    ) -> ToolResult:
        """Invoke *tool_name* on *connection_id* and decode the result.

        Raises:
            ConfigError: No token in the context.
            StaleCredentialError: The mesh answered 401.
            RpcTransportError: Any other HTTP or network failure.
            RpcParseError: The body could not be decoded.
            RemoteToolError: The mesh reported a tool error.
        """
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json, text/event-stream",
            "Authorization": self._context.bearer(),
        }
        body = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": "tools/call",
            "params": {"name": tool_name, "arguments": dict(arguments or {})},
        }
        endpoint = self._context.endpoint(connection_id)
        logger.debug("Calling %s on %s", tool_name, endpoint)

        try:
            response = await self._client.post(endpoint, json=body, headers=headers)
        except httpx.TransportError as e:
            raise RpcTransportError(connection_id, f"Mesh unreachable: {e}") from e

        text = response.text
        if response.status_code == 401:
            logger.warning(
                "Mesh rejected credentials for %s (401); a fresh token is required",
                connection_id,
            )
            raise StaleCredentialError(connection_id)
        if response.status_code >= 400:
            logger.debug(
                "Mesh error response (%d): %s",
                response.status_code,
                text[:_LOG_PREVIEW],
            )
            raise RpcTransportError(
                connection_id,
                f"Mesh API error ({response.status_code}): {text[:_LOG_PREVIEW]}",
                status_code=response.status_code,
            )

        content_type = response.headers.get("content-type", "")
        logger.debug("Mesh response (%s): %s", content_type, text[:_LOG_PREVIEW])
        envelope = parse_body(connection_id, content_type, text)
        return decode_result(connection_id, tool_name, envelope)

    async def call_tool_value(
        self,
        connection_id: str,
        tool_name: str,
        arguments: Mapping[str, Any] | None = None,
    ) -> Any:
        """Like :meth:`call_tool` but return a plain value.

        Raises:
            RemoteToolError: If the tool returned an error result.
        """
        result = await self.call_tool(connection_id, tool_name, arguments)
        if isinstance(result, ErrorResult):
            raise RemoteToolError(tool_name, result.message)
        if isinstance(result, StructuredResult):
            return result.value
        if isinstance(result, TextResult):
            return result.text
        return {"mimeType": result.mime_type, "dataUrl": result.data_url}
