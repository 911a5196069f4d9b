"""
Handlers for the chat blocks: trigger, bot assistant and chat response.

All three read the inbound chat payload (application id, API token,
channel, bot identity) from the trigger block's recorded output.
"""

from typing import Any, Dict, Mapping
from urllib.parse import quote
import logging

from routeflow.engine.graph import Block, BlockKind
from routeflow.engine.handlers.base import BlockHandler, ToolBlockHandler
from routeflow.engine.prompts import build_bot_prompts
from routeflow.engine.state import ExecutionContext
from routeflow.tools.gim import get_gim_base_url


logger = logging.getLogger(__name__)


def _text(value: Any) -> str:
    return str(value or "").strip()


class ChatTriggerHandler(BlockHandler):
    """Entry block: its output is the inbound chat payload itself."""

    kind = BlockKind.CHAT_TRIGGER

    async def execute(self, block: Block, inputs: Mapping[str, Any], context: ExecutionContext) -> Any:
        logger.info(f"Chat trigger {block.id} received payload with keys {sorted(inputs)}")
        return dict(inputs)


class BotAssistantHandler(ToolBlockHandler):
    """
    Asks a GIM bot a prompt and returns the bot's response.

    With ``include_history`` set, the channel's recent conversation is
    fetched through the ``chat_history`` tool and folded into the prompt.
    The transcript is returned as ``history_conversation``.
    """

    kind = BlockKind.BOT_ASSISTANT
    default_tool = "bot_assistant"
    history_tool = "chat_history"

    async def execute(self, block: Block, inputs: Mapping[str, Any], context: ExecutionContext) -> Any:
        payload = context.trigger_payload()
        app_id = _text(payload.get("app_id"))
        api_token = _text(payload.get("api_token"))
        channel = _text(payload.get("channel_url"))
        bot_user_id = _text(payload.get("bot_user_id"))
        bot_id = _text(payload.get("bot_uid") or inputs.get("bot_id"))
        prompt = str(inputs.get("prompt") or "")
        include_history = bool(inputs.get("include_history"))

        if not bot_id:
            raise self.fail(block, "Bot ID is required (from trigger or input)")
        if not prompt:
            raise self.fail(block, "Prompt is required")
        if include_history and not (channel and bot_user_id):
            logger.warning(
                f"Bot assistant {block.id} has include_history set but the trigger payload "
                f"lacks a channel or bot user (channel={bool(channel)}, bot_user={bool(bot_user_id)})"
            )
        if not app_id:
            raise self.fail(block, "Missing GIM application ID")
        if not api_token:
            raise self.fail(block, "Missing GIM API token")

        base_url = get_gim_base_url(app_id)
        url = f"{base_url}/v1/applications/{app_id}/bots/{bot_id}/ask"
        params: Dict[str, Any] = {
            "url": url,
            "api_token": api_token,
            "bot_id": bot_id,
            "prompt": prompt,
        }
        system_prompt = str(inputs.get("system_prompt") or "")
        if system_prompt:
            params["system_prompt"] = system_prompt

        history = ""
        if include_history:
            if channel and bot_user_id:
                history = await self.fetch_history(base_url, channel, api_token, bot_user_id, context)
            # The ask endpoint reads only "prompt"
            final_prompt, _ = build_bot_prompts(prompt, system_prompt=system_prompt or prompt, history=history)
            params["prompt"] = final_prompt
            params["system_prompt"] = final_prompt

        logger.info(f"Bot assistant {block.id} asking bot {bot_id} (history={bool(history)})")
        output = await self.invoke_tool(block, params, context)
        if history:
            return {**output, "history_conversation": history}
        return output

    async def fetch_history(
        self,
        base_url: str,
        channel: str,
        api_token: str,
        bot_user_id: str,
        context: ExecutionContext,
    ) -> str:
        """Labelled transcript of the channel, or "" when it cannot be fetched."""
        if not base_url:
            logger.warning("Cannot fetch chat history without a GIM base URL")
            return ""
        result = await self.gateway.invoke(
            self.history_tool,
            {
                "url": f"{base_url}/v2/group_channels/{quote(channel, safe='')}/messages",
                "api_token": api_token,
                "bot_user_id": bot_user_id,
            },
            context,
        )
        if not result.success:
            logger.warning(f"Chat history unavailable, continuing without it: {result.error}")
            return ""
        return str(result.output.get("history") or "")


class ChatResponseHandler(ToolBlockHandler):
    """Posts a reply message into the conversation's group channel."""

    kind = BlockKind.CHAT_RESPONSE
    default_tool = "chat_response"

    async def execute(self, block: Block, inputs: Mapping[str, Any], context: ExecutionContext) -> Any:
        payload = context.trigger_payload()
        app_id = _text(payload.get("app_id"))
        channel = _text(payload.get("channel_url"))
        api_token = _text(payload.get("api_token"))
        bot_user_id = _text(payload.get("bot_user_id"))

        path = f"/v2/group_channels/{quote(channel, safe='')}/messages" if channel else ""
        params = {
            **inputs,
            "url": f"{get_gim_base_url(app_id)}{path}",
            "api_token": api_token,
            "bot_user_id": bot_user_id,
        }

        logger.info(
            f"Chat response {block.id} prepared (channel={bool(channel)}, "
            f"token={bool(api_token)}, bot_user={bool(bot_user_id)})"
        )
        return await self.invoke_tool(block, params, context)
