"""
Intent Router handler.

Asks a bot profile which downstream block should handle the user's input
and records the answer so only that branch executes.
"""

from typing import Any, Mapping, Optional
import logging

from routeflow.config import settings
from routeflow.engine.graph import Block, BlockKind
from routeflow.engine.handlers.base import ToolBlockHandler
from routeflow.engine.path import PathTracker
from routeflow.engine.routing import DynamicRouter, RoutingRule
from routeflow.engine.state import ExecutionContext
from routeflow.tools.gateway import ToolGateway
from routeflow.tools.gim import get_gim_base_url


logger = logging.getLogger(__name__)


class IntentRouterHandler(ToolBlockHandler):
    """
    Handler for intent router blocks that dynamically select execution paths.

    Inputs:
        bot_profile: Bot that makes the routing decision (required)
        user_input: Text to classify (required)
        intent_routes: Optional list of ``{route_to, keywords}`` hints
    """

    kind = BlockKind.INTENT_ROUTER

    def __init__(self, gateway: ToolGateway, tool_id: Optional[str] = None):
        super().__init__(gateway)
        self.default_tool = tool_id or settings.ROUTER_TOOL_ID

    async def execute(self, block: Block, inputs: Mapping[str, Any], context: ExecutionContext) -> Any:
        logger.info(f"Executing intent router block: {block.id}")

        payload = context.trigger_payload()
        app_id = str(payload.get("app_id") or "").strip()
        api_token = str(payload.get("api_token") or "").strip()
        bot_profile = str(inputs.get("bot_profile") or "").strip()
        user_input = str(inputs.get("user_input") or "")

        if not bot_profile:
            raise self.fail(block, "Bot profile is required")
        if not user_input:
            raise self.fail(block, "User input is required")
        if not app_id:
            raise self.fail(block, "Missing GIM application ID")
        if not api_token:
            raise self.fail(block, "Missing GIM API token")

        raw_routes = inputs.get("intent_routes") or []
        rules = [
            RoutingRule.from_dict(route)
            for route in (raw_routes if isinstance(raw_routes, list) else [])
            if isinstance(route, Mapping)
        ]

        router = DynamicRouter(PathTracker(context.workflow), self.gateway, self.tool_id(block))
        decision = await router.route(
            block,
            user_input,
            rules,
            {
                "url": f"{get_gim_base_url(app_id)}/v1/applications/{app_id}/bots/{bot_profile}/ask",
                "api_token": api_token,
                "bot_id": bot_profile,
            },
            context,
        )

        return {
            "user_input": user_input,
            **decision.to_output(),
        }
