"""
Tests for the tool registry, the invocation gateway and the built-in GIM tools.
"""

import pytest
import json

import httpx

from routeflow.engine.graph import Block, BlockKind, Edge, WorkflowGraph
from routeflow.engine.handlers import BotAssistantHandler, ChatResponseHandler, IntentRouterHandler
from routeflow.engine.prompts import build_bot_prompts, truncate_history
from routeflow.engine.state import ExecutionContext
from routeflow.errors import ExecutionError, ToolNotFoundError
from routeflow.tools import ToolGateway, ToolRegistry, ToolResult, tool_registry
from routeflow.tools.builtin import stringify_ids
from routeflow.tools.gim import get_gim_base_url


def gateway_with(handler) -> ToolGateway:
    """Gateway over the global registry with a mocked HTTP transport."""
    return ToolGateway(client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


# ============================================================
# Registry Tests
# ============================================================

class TestToolRegistry:
    """Tests for ToolRegistry."""

    def test_builtin_tools_registered(self):
        """Test that the GIM tools are in the global registry."""
        assert "bot_assistant" in tool_registry
        assert "chat_response" in tool_registry
        assert "chat_history" in tool_registry

    def test_register_decorator(self):
        """Test registering a tool with the decorator."""
        registry = ToolRegistry()

        @registry.register("echo", description="Echo params back")
        async def echo(params, client):
            return ToolResult(success=True, output=params)

        assert registry.has("echo")
        assert registry.get("echo").to_dict() == {
            "id": "echo",
            "name": "echo",
            "description": "Echo params back",
            "parameters": {},
        }
        assert registry.remove("echo")
        assert len(registry) == 0


# ============================================================
# GIM Helper Tests
# ============================================================

class TestGimHelpers:
    """Tests for GIM URL helpers."""

    def test_base_url_substitutes_app_id(self):
        """Test that the gate placeholder is replaced with the app id."""
        assert get_gim_base_url("app-1", "@https://api-gate.gim.test") == "https://api-app-1.gim.test"

    def test_base_url_without_app_id(self):
        """Test that the base URL is returned as-is without an app id."""
        assert get_gim_base_url("", "https://api-gate.gim.test") == "https://api-gate.gim.test"

    def test_base_url_empty(self):
        """Test that an unset base URL yields an empty string."""
        assert get_gim_base_url("app-1", "") == ""

    def test_base_url_strips_single_at(self):
        """Test that only one leading @ is removed from the base URL."""
        assert get_gim_base_url("", "@https://api-gate.gim.test") == "https://api-gate.gim.test"
        assert get_gim_base_url("", "@@https://api-gate.gim.test") == "@https://api-gate.gim.test"

    def test_stringify_ids(self):
        """Test that identifier fields become strings at any depth."""
        data = {"message_id": 98765432109876543210, "items": [{"parent_message_id": 7}], "count": 3}
        assert stringify_ids(data) == {
            "message_id": "98765432109876543210",
            "items": [{"parent_message_id": "7"}],
            "count": 3,
        }


# ============================================================
# Gateway Tests
# ============================================================

class TestToolGateway:
    """Tests for ToolGateway with the built-in tools."""

    @pytest.mark.asyncio
    async def test_unknown_tool(self):
        """Test that an unregistered tool id raises ToolNotFoundError."""
        gateway = gateway_with(lambda request: httpx.Response(200, json={}))
        with pytest.raises(ToolNotFoundError) as exc_info:
            await gateway.invoke("does_not_exist", {})
        assert exc_info.value.tool_id == "does_not_exist"

    @pytest.mark.asyncio
    async def test_bot_assistant_success(self):
        """Test a successful bot ask request."""
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["headers"] = request.headers
            captured["body"] = json.loads(request.content)
            return httpx.Response(200, json={"response": "Hello there"})

        result = await gateway_with(handler).invoke("bot_assistant", {
            "url": "https://api.gim.test/v1/applications/app/bots/bot-1/ask",
            "api_token": "secret",
            "bot_id": "bot-1",
            "prompt": "Hi",
        })

        assert result.success
        assert result.output == {"response": "Hello there"}
        assert captured["headers"]["Api-Token"] == "secret"
        assert captured["body"] == {"bot_id": "bot-1", "prompt": "Hi"}

    @pytest.mark.asyncio
    async def test_bot_assistant_error_field(self):
        """Test that an error in the reply body is a failure."""
        result = await gateway_with(
            lambda request: httpx.Response(200, json={"error": {"message": "bot is asleep"}})
        ).invoke("bot_assistant", {"url": "https://api.gim.test/ask", "api_token": "t"})

        assert not result.success
        assert result.error == "bot is asleep"

    @pytest.mark.asyncio
    async def test_bot_assistant_missing_response(self):
        """Test that a reply without a response field is a failure."""
        result = await gateway_with(
            lambda request: httpx.Response(200, json={"other": 1})
        ).invoke("bot_assistant", {"url": "https://api.gim.test/ask", "api_token": "t"})

        assert not result.success
        assert result.error == "Invalid API response: missing response field"

    @pytest.mark.asyncio
    async def test_non_json_reply(self):
        """Test that a non-JSON body is reported with a preview."""
        result = await gateway_with(
            lambda request: httpx.Response(502, text="<html>Bad Gateway</html>")
        ).invoke("bot_assistant", {"url": "https://api.gim.test/ask", "api_token": "t"})

        assert not result.success
        assert "non-JSON" in result.error
        assert "Bad Gateway" in result.error

    @pytest.mark.asyncio
    async def test_missing_url(self):
        """Test that a missing target URL is a failed result."""
        result = await gateway_with(
            lambda request: httpx.Response(200, json={})
        ).invoke("chat_response", {"api_token": "t"})

        assert not result.success
        assert result.error == "chat_response: url is required"

    @pytest.mark.asyncio
    async def test_timeout(self):
        """Test that transport timeouts become failed results."""
        def handler(request):
            raise httpx.ReadTimeout("too slow", request=request)

        result = await gateway_with(handler).invoke(
            "bot_assistant", {"url": "https://api.gim.test/ask", "api_token": "t"}
        )

        assert not result.success
        assert result.error == "bot_assistant timed out"

    @pytest.mark.asyncio
    async def test_chat_response_keeps_large_ids(self):
        """Test that 64-bit message ids survive decoding with every digit."""
        body = b'{"message_id": 98765432109876543210, "message": "sent"}'

        result = await gateway_with(
            lambda request: httpx.Response(200, content=body, headers={"Content-Type": "application/json"})
        ).invoke("chat_response", {
            "url": "https://api.gim.test/v2/group_channels/c/messages",
            "api_token": "t",
            "message": "sent",
            "bot_user_id": "bot-user",
        })

        assert result.success
        assert result.output["data"]["message_id"] == "98765432109876543210"

    @pytest.mark.asyncio
    async def test_chat_response_http_error(self):
        """Test that a non-2xx reply is a failure with the API's message."""
        result = await gateway_with(
            lambda request: httpx.Response(403, json={"error": True, "message": "Invalid token"})
        ).invoke("chat_response", {"url": "https://api.gim.test/messages", "api_token": "t"})

        assert not result.success
        assert result.error == "Invalid token"

    @pytest.mark.asyncio
    async def test_chat_history_labels_roles(self):
        """Test that the bot's messages are labelled Agent and everyone else User."""
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["method"] = request.method
            captured["query"] = dict(request.url.params)
            captured["token"] = request.headers["Api-Token"]
            return httpx.Response(200, json={"messages": [
                {"message": "where is my order?", "user": {"user_id": "customer-9"}},
                {"message": "Let me check.", "user": {"user_id": "bot-user"}},
                {"message": "thanks", "user": None},
            ]})

        result = await gateway_with(handler).invoke("chat_history", {
            "url": "https://api.gim.test/v2/group_channels/c/messages",
            "api_token": "t",
            "bot_user_id": "bot-user",
        })

        assert result.success
        assert result.output == {
            "history": "User: where is my order?\nAgent: Let me check.\nUser: thanks",
            "message_count": 3,
        }
        assert captured == {"method": "GET", "query": {"message_ts": "9999999999999"}, "token": "t"}

    @pytest.mark.asyncio
    async def test_chat_history_empty_and_failed(self):
        """Test an empty channel and a rejected history request."""
        empty = await gateway_with(
            lambda request: httpx.Response(200, json={"messages": []})
        ).invoke("chat_history", {"url": "https://api.gim.test/messages", "api_token": "t"})
        assert empty.success
        assert empty.output == {"history": "", "message_count": 0}

        failed = await gateway_with(
            lambda request: httpx.Response(401, json={"error": True, "message": "Invalid token"})
        ).invoke("chat_history", {"url": "https://api.gim.test/messages", "api_token": "t"})
        assert not failed.success
        assert failed.error == "Invalid token"


# ============================================================
# Prompt Tests
# ============================================================

class TestBotPrompts:
    """Tests for bot prompt composition."""

    def test_history_kept_when_short(self):
        """Test that a short transcript is kept whole."""
        assert truncate_history("  User: hi\nAgent: hello  ") == "User: hi\nAgent: hello"
        assert truncate_history("x" * 4000) == "x" * 4000

    def test_history_truncated_from_start(self):
        """Test that long transcripts keep their most recent characters."""
        history = "old " * 500 + "y" * 3990 + "END"

        truncated = truncate_history(history)

        assert truncated.startswith("…")
        assert len(truncated) == 4001
        assert truncated.endswith("y" * 3990 + "END")
        assert truncate_history("abcdef", max_chars=3) == "…def"

    def test_sections_in_order(self):
        """Test that instructions come before the history section."""
        system, user = build_bot_prompts(
            "  When does it ship?  ",
            system_prompt="Answer shipping questions",
            history="User: hi\nAgent: hello",
        )

        assert user == "When does it ship?"
        assert system.index("### System Instructions") < system.index("### Recent conversation")
        assert "<system>\nAnswer shipping questions\n</system>" in system
        assert "<history>\nUser: hi\nAgent: hello\n</history>" in system

    def test_sections_omitted_when_empty(self):
        """Test that empty instructions and history add no sections."""
        system, _ = build_bot_prompts("hi")

        assert "###" not in system
        assert system.startswith("You are a helpful, concise assistant")


# ============================================================
# Chat Handler Tests
# ============================================================

def chat_context(payload) -> ExecutionContext:
    graph = WorkflowGraph(
        blocks=[
            Block("trigger", BlockKind.CHAT_TRIGGER),
            Block("router", BlockKind.INTENT_ROUTER, title="Triage"),
            Block("faq", BlockKind.BOT_ASSISTANT),
            Block("reply", BlockKind.CHAT_RESPONSE),
        ],
        edges=[
            Edge("e1", "trigger", "router"),
            Edge("e2", "router", "faq"),
            Edge("e3", "router", "reply"),
        ],
    )
    context = ExecutionContext(graph)
    context.block_states.set("trigger", payload)
    return context


PAYLOAD = {
    "app_id": "app-1",
    "api_token": "token-1",
    "channel_url": "channel 1",
    "bot_user_id": "bot-user",
}


class TestChatHandlers:
    """Tests for the chat block handlers."""

    @pytest.fixture(autouse=True)
    def gim_base_url(self, monkeypatch):
        from routeflow.config import settings
        monkeypatch.setattr(settings, "GIM_BASE_URL", "https://api-gate.gim.test")

    @pytest.mark.asyncio
    async def test_bot_assistant_requires_bot_id_first(self):
        """Test validation order: bot id before prompt and credentials."""
        handler = BotAssistantHandler(gateway_with(lambda request: httpx.Response(200, json={})))
        context = chat_context({})
        block = Block("faq", BlockKind.BOT_ASSISTANT)

        with pytest.raises(ExecutionError) as exc_info:
            await handler.execute(block, {}, context)
        assert exc_info.value.message == "Bot ID is required (from trigger or input)"

        with pytest.raises(ExecutionError) as exc_info:
            await handler.execute(block, {"bot_id": "b"}, context)
        assert exc_info.value.message == "Prompt is required"

        with pytest.raises(ExecutionError) as exc_info:
            await handler.execute(block, {"bot_id": "b", "prompt": "p"}, context)
        assert exc_info.value.message == "Missing GIM application ID"

    @pytest.mark.asyncio
    async def test_bot_assistant_calls_ask_url(self):
        """Test that the ask URL is built from the trigger payload."""
        urls = []

        def transport(request):
            urls.append(str(request.url))
            return httpx.Response(200, json={"response": "ok"})

        handler = BotAssistantHandler(gateway_with(transport))
        output = await handler.execute(
            Block("faq", BlockKind.BOT_ASSISTANT),
            {"bot_id": "faq-bot", "prompt": "Answer"},
            chat_context(PAYLOAD),
        )

        assert output == {"response": "ok"}
        assert urls == ["https://api-app-1.gim.test/v1/applications/app-1/bots/faq-bot/ask"]

    @pytest.mark.asyncio
    async def test_bot_assistant_includes_history(self):
        """Test that include_history folds the transcript into the prompt and output."""
        asked = {}

        def transport(request):
            if request.method == "GET":
                assert request.url.raw_path.decode().startswith("/v2/group_channels/channel%201/messages")
                return httpx.Response(200, json={"messages": [
                    {"message": "is it shipped?", "user": {"user_id": "customer"}},
                    {"message": "Checking now", "user": {"user_id": "bot-user"}},
                ]})
            asked.update(json.loads(request.content))
            return httpx.Response(200, json={"response": "It shipped"})

        handler = BotAssistantHandler(gateway_with(transport))
        output = await handler.execute(
            Block("faq", BlockKind.BOT_ASSISTANT),
            {"bot_id": "faq-bot", "prompt": "Answer", "include_history": True},
            chat_context(PAYLOAD),
        )

        history = "User: is it shipped?\nAgent: Checking now"
        assert output == {"response": "It shipped", "history_conversation": history}
        assert "### Recent conversation\n<history>\n" + history in asked["prompt"]
        assert asked["system_prompt"] == asked["prompt"]

    @pytest.mark.asyncio
    async def test_bot_assistant_history_unavailable(self):
        """Test that a failed history fetch does not fail the block."""
        def transport(request):
            if request.method == "GET":
                return httpx.Response(500, json={"error": True, "message": "down"})
            return httpx.Response(200, json={"response": "ok"})

        handler = BotAssistantHandler(gateway_with(transport))
        output = await handler.execute(
            Block("faq", BlockKind.BOT_ASSISTANT),
            {"bot_id": "faq-bot", "prompt": "Answer", "include_history": True},
            chat_context(PAYLOAD),
        )

        assert output == {"response": "ok"}

    @pytest.mark.asyncio
    async def test_chat_response_escapes_channel(self):
        """Test that the channel URL is path-escaped."""
        urls = []

        def transport(request):
            urls.append(request.url.raw_path.decode())
            return httpx.Response(200, json={"message_id": 1})

        handler = ChatResponseHandler(gateway_with(transport))
        output = await handler.execute(
            Block("reply", BlockKind.CHAT_RESPONSE),
            {"message": "Thanks!"},
            chat_context(PAYLOAD),
        )

        assert output == {"data": {"message_id": "1"}}
        assert urls == ["/v2/group_channels/channel%201/messages"]

    @pytest.mark.asyncio
    async def test_intent_router_validation(self):
        """Test validation order of the intent router."""
        handler = IntentRouterHandler(gateway_with(lambda request: httpx.Response(200, json={})))
        context = chat_context(PAYLOAD)
        block = context.workflow.get_block("router")

        with pytest.raises(ExecutionError) as exc_info:
            await handler.execute(block, {"user_input": "hi"}, context)
        assert exc_info.value.message == "Bot profile is required"
        assert exc_info.value.block_name == "Triage"

        with pytest.raises(ExecutionError) as exc_info:
            await handler.execute(block, {"bot_profile": "router-bot"}, context)
        assert exc_info.value.message == "User input is required"

    @pytest.mark.asyncio
    async def test_intent_router_selects_candidate(self):
        """Test a routing decision through the real bot assistant tool."""
        handler = IntentRouterHandler(
            gateway_with(lambda request: httpx.Response(200, json={"response": "FAQ"}))
        )
        context = chat_context(PAYLOAD)

        output = await handler.execute(
            context.workflow.get_block("router"),
            {
                "bot_profile": "router-bot",
                "user_input": "what are your hours?",
                "intent_routes": [{"route_to": "faq", "keywords": "hours"}],
            },
            context,
        )

        assert output == {
            "user_input": "what are your hours?",
            "selected_block_id": "faq",
            "selected_block_type": "bot_assistant",
            "selected_block_title": "Untitled Block",
        }
        assert context.decisions == {"router": "faq"}


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
