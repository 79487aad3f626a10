"""Canned mesh payloads shared across tests."""

from __future__ import annotations

from typing import Any

CONNECTION_ID = "conn_mgmt"
LLM_ID = "conn_llm"

SLACK: dict[str, Any] = {
    "id": "conn_slack",
    "title": "Slack",
    "tools": [
        {
            "name": "SEND_MESSAGE",
            "description": "Send a message to a Slack channel",
            "inputSchema": {
                "type": "object",
                "properties": {
                    "channel": {"type": "string"},
                    "text": {"type": "string"},
                },
                "required": ["channel", "text"],
            },
        },
        {
            "name": "LIST_CHANNELS",
            "description": "List Slack channels",
            "inputSchema": {"type": "object", "properties": {}},
        },
    ],
}

IMAGES: dict[str, Any] = {
    "id": "conn_images",
    "title": "Image Studio",
    "tools": [
        {
            "name": "GENERATE_IMAGE",
            "description": "Generate an image from a prompt",
            "inputSchema": {
                "type": "object",
                "properties": {"prompt": {"type": "string"}},
                "required": ["prompt"],
            },
        },
    ],
}

# 1x1 transparent PNG
PNG_BASE64 = (
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAQAAAC1HAwCAAAAC0lEQVR42mNkYAAAAAYAAjCB0C8"
    "AAAAASUVORK5CYII="
)
