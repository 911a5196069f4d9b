"""
Built-in Tools for the chat workflow blocks.

These tools talk to the GIM chat platform over HTTP. Handlers are
responsible for building the fully qualified URL and passing the
credentials; the tools only shape the request and validate the reply.
"""

from typing import Any, Dict, Iterable, Optional

import httpx

from routeflow.tools.registry import ToolResult, register_tool


# Identifier fields that can exceed 2**53 and must never go through a float
ID_FIELDS = ("message_id", "parent_message_id", "root_message_id")


def _require(params: Dict[str, Any], key: str, tool_id: str) -> str:
    value = params.get(key)
    if not value or not isinstance(value, str):
        raise ValueError(f"{tool_id}: {key} is required")
    return value


def _read_json(response: httpx.Response, tool_id: str) -> Dict[str, Any]:
    """Decode a JSON object body, raising ValueError with a body preview otherwise."""
    try:
        data = response.json()
    except ValueError as e:
        preview = (response.text or "").strip()[:500] or "<empty>"
        raise ValueError(f"{tool_id} returned non-JSON response: {preview}") from e
    if not isinstance(data, dict):
        raise ValueError(f"{tool_id} returned invalid response type: {type(data).__name__}")
    return data


def _error_message(data: Dict[str, Any]) -> Optional[str]:
    """Pull a readable message out of a GIM error body."""
    error = data.get("error")
    if isinstance(error, dict):
        error = error.get("message")
    if isinstance(error, str) and error:
        return error
    message = data.get("message")
    return str(message) if message else None


def stringify_ids(data: Any, fields: Iterable[str] = ID_FIELDS) -> Any:
    """
    Return a copy of ``data`` with identifier fields converted to strings.

    Python decodes JSON integers exactly, so converting after decoding keeps
    every digit; nested dicts and lists are handled recursively.
    """
    fields = tuple(fields)
    if isinstance(data, dict):
        return {
            key: str(value) if key in fields and isinstance(value, int) and not isinstance(value, bool)
            else stringify_ids(value, fields)
            for key, value in data.items()
        }
    if isinstance(data, list):
        return [stringify_ids(item, fields) for item in data]
    return data


@register_tool(
    "bot_assistant",
    name="Bot Assistant",
    description="Send a prompt to a GIM bot and receive its response",
    parameters={
        "url": "Fully qualified ask URL",
        "api_token": "GIM API token",
        "bot_id": "GIM bot id",
        "prompt": "Prompt to send to the bot",
        "system_prompt": "Optional system prompt",
    },
)
async def bot_assistant(params: Dict[str, Any], client: httpx.AsyncClient) -> ToolResult:
    url = _require(params, "url", "bot_assistant")
    api_token = _require(params, "api_token", "bot_assistant")

    payload: Dict[str, Any] = {
        "bot_id": params.get("bot_id"),
        "prompt": params.get("prompt"),
    }
    if params.get("system_prompt"):
        payload["system_prompt"] = params["system_prompt"]

    response = await client.post(
        url,
        json=payload,
        headers={"Api-Token": api_token, "Content-Type": "application/json"},
    )
    data = _read_json(response, "bot_assistant")

    if data.get("error") or data.get("message"):
        return ToolResult(success=False, output=data, error=_error_message(data) or "Unknown error")
    if response.status_code >= 400:
        return ToolResult(
            success=False,
            output=data,
            error=f"bot_assistant failed with HTTP {response.status_code}",
        )
    if not data.get("response"):
        return ToolResult(success=False, error="Invalid API response: missing response field")

    return ToolResult(success=True, output={"response": data["response"]})


@register_tool(
    "chat_response",
    name="Chat Response",
    description="Reply to a conversation by sending a message to its group channel",
    parameters={
        "url": "Fully qualified messages URL",
        "api_token": "GIM API token",
        "bot_user_id": "User id of the bot sending the message",
        "message": "Message text",
        "metaarray": "Optional sorted metaarray",
    },
)
async def chat_response(params: Dict[str, Any], client: httpx.AsyncClient) -> ToolResult:
    url = _require(params, "url", "chat_response")
    api_token = _require(params, "api_token", "chat_response")

    body = {
        "message": params.get("message", ""),
        "message_type": "MESG",
        "user_id": params.get("bot_user_id"),
        "sorted_metaarray": params.get("metaarray") or [],
    }
    response = await client.post(
        url,
        json=body,
        headers={"Api-Token": api_token, "Content-Type": "application/json"},
    )
    data = _read_json(response, "chat_response")

    if response.status_code >= 400:
        message = _error_message(data)
        return ToolResult(
            success=False,
            output=data,
            error=message or "Failed to send message",
        )

    return ToolResult(success=True, output={"data": stringify_ids(data)})


# Newest possible message timestamp: list messages ending at "now"
HISTORY_MESSAGE_TS = "9999999999999"


def format_message_history(messages: Iterable[Any], bot_user_id: str) -> str:
    """Render channel messages as one "Agent: ..." or "User: ..." line each."""
    lines = []
    for msg in messages:
        if not isinstance(msg, dict):
            continue
        user = msg.get("user") or {}
        role = "Agent" if bot_user_id and user.get("user_id") == bot_user_id else "User"
        lines.append(f"{role}: {msg.get('message') or ''}")
    return "\n".join(lines)


@register_tool(
    "chat_history",
    name="Chat History",
    description="Fetch the recent messages of a group channel as a labelled transcript",
    parameters={
        "url": "Fully qualified messages URL",
        "api_token": "GIM API token",
        "bot_user_id": "User id of the bot; its messages are labelled Agent",
    },
)
async def chat_history(params: Dict[str, Any], client: httpx.AsyncClient) -> ToolResult:
    url = _require(params, "url", "chat_history")
    api_token = _require(params, "api_token", "chat_history")

    response = await client.get(
        url,
        params={"message_ts": HISTORY_MESSAGE_TS},
        headers={"Api-Token": api_token, "Content-Type": "application/json"},
    )
    data = _read_json(response, "chat_history")

    if response.status_code >= 400:
        return ToolResult(
            success=False,
            output=data,
            error=_error_message(data) or f"chat_history failed with HTTP {response.status_code}",
        )

    messages = data.get("messages") or []
    if not isinstance(messages, list):
        raise ValueError("chat_history returned invalid messages field")

    history = format_message_history(messages, str(params.get("bot_user_id") or ""))
    return ToolResult(success=True, output={"history": history, "message_count": len(messages)})
