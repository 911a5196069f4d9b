"""
Dynamic Router.

Composes a decision request for an external decision maker, sends it
through the tool gateway and maps the answer onto exactly one routing
candidate. The intelligence of the decision lives entirely outside this
module; here we only guarantee that the answer names a real candidate.
"""

from typing import Any, Dict, List, Mapping, Optional, Sequence
from dataclasses import dataclass
import json
import logging

from routeflow.engine.graph import Block
from routeflow.engine.path import CandidateBlock, PathTracker
from routeflow.engine.state import ExecutionContext
from routeflow.errors import ExecutionError, InvalidRoutingDecision
from routeflow.tools.gateway import ToolGateway


logger = logging.getLogger(__name__)


BASE_INSTRUCTIONS = """You are an intelligent routing agent responsible for directing workflow requests to the most appropriate block. Your task is to analyze the input and determine the single most suitable destination based on the request.

Key Instructions:
1. You MUST choose exactly ONE destination from the IDs of the blocks in the workflow. The destination must be a valid block id.

2. Analysis Framework:
   - Carefully evaluate the intent and requirements of the request
   - Consider the primary action needed
   - Match the core functionality with the most appropriate destination"""

ROUTING_INSTRUCTIONS = """Routing Instructions:
1. Analyze the input request carefully against each block's:
   - Primary purpose (from title, description, and system prompt)
   - Look for keywords in the system prompt that match the user's request
   - Configuration settings
   - Current state (if available)
   - Processing capabilities

2. Selection Criteria:
   - Choose the block that best matches the input's requirements
   - Consider the block's specific functionality and constraints
   - Factor in any relevant current state or configuration
   - Prioritize blocks that can handle the input most effectively"""

RESPONSE_FORMAT = """Response Format:
Return ONLY the destination id as a single word, lowercase, no punctuation or explanation.
Example: "2acd9007-27e8-4510-a487-73d3b825e7c1"

Remember: Your response must be ONLY the block ID - no additional text, formatting, or explanation."""


@dataclass
class RoutingRule:
    """
    A keyword hint for the decision maker.

    Rules are rendered into the decision request only; they are never
    enforced programmatically.
    """
    route_to: str
    keywords: str = ""

    @property
    def keyword_list(self) -> List[str]:
        return [k.strip() for k in (self.keywords or "").split(",") if k.strip()]

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RoutingRule":
        return cls(
            route_to=str(data.get("route_to") or data.get("routeTo") or ""),
            keywords=str(data.get("keywords") or ""),
        )


@dataclass
class RoutingDecision:
    """The router's resolved choice."""
    selected_block_id: str
    selected_block_type: str
    selected_block_title: str
    raw_response: str

    def to_output(self) -> Dict[str, str]:
        return {
            "selected_block_id": self.selected_block_id,
            "selected_block_type": self.selected_block_type or "unknown",
            "selected_block_title": self.selected_block_title or "Untitled Block",
        }


def _dump(value: Any) -> str:
    return json.dumps(value, indent=2, default=str)


def build_routing_prompt(
    rules: Sequence[RoutingRule],
    text: str,
    candidates: Optional[Sequence[CandidateBlock]] = None,
) -> str:
    """
    Compose the decision request sent to the decision maker.

    Sections, in order: base instructions, available target blocks,
    routing instructions, keyword rules (when any), the text to classify
    and the required response format.
    """
    sections = [BASE_INSTRUCTIONS]

    if candidates is not None:
        lines = ["Available Target Blocks:"]
        for candidate in candidates:
            lines.append("")
            lines.append(f"ID: {candidate.id}")
            lines.append(f"Type: {candidate.type}")
            lines.append(f"Title: {candidate.title}")
            lines.append(f"Description: {candidate.description}")
            lines.append(f"System Prompt: {json.dumps(candidate.config.get('system_prompt', ''), default=str)}")
            lines.append(f"Configuration: {_dump(candidate.config)}")
            if candidate.current_state is not None:
                lines.append(f"Current State: {_dump(candidate.current_state)}")
            lines.append("---")
        sections.append("\n".join(lines))

    sections.append(ROUTING_INSTRUCTIONS)

    if rules:
        lines = ["Routing Rules:"]
        for rule in rules:
            keywords = "', '".join(rule.keyword_list)
            lines.append(f"- Route to '{rule.route_to}' if the user mentions keywords:\n'{keywords}'")
        sections.append("\n".join(lines))

    sections.append(f"Input to analyze: {text}")
    sections.append(RESPONSE_FORMAT)
    return "\n\n".join(sections)


def match_candidate(raw_response: str, candidates: Sequence[CandidateBlock]) -> CandidateBlock:
    """
    Map the decision maker's answer onto a candidate.

    The whole answer, trimmed and lower-cased, must equal one candidate id.

    Raises:
        InvalidRoutingDecision: If no candidate matches (always, when empty)
    """
    chosen_id = (raw_response or "").strip().lower()
    for candidate in candidates:
        if candidate.id == chosen_id:
            return candidate
    raise InvalidRoutingDecision(raw_response, [c.id for c in candidates])


class DynamicRouter:
    """
    Resolves which single outgoing edge a router block takes.

    Args:
        path_tracker: Graph queries and decision bookkeeping for the run
        gateway: Tool gateway used to reach the decision maker
        tool_id: Tool that answers decision requests
    """

    def __init__(self, path_tracker: PathTracker, gateway: ToolGateway, tool_id: str = "bot_assistant"):
        self.path_tracker = path_tracker
        self.gateway = gateway
        self.tool_id = tool_id

    async def route(
        self,
        router: Block,
        text: str,
        rules: Sequence[RoutingRule],
        tool_params: Dict[str, Any],
        context: ExecutionContext,
        tool_id: Optional[str] = None,
    ) -> RoutingDecision:
        """
        Run one routing decision and record it.

        Args:
            router: The router block
            text: Raw text to classify
            rules: Keyword hints for the decision maker
            tool_params: Target URL and credentials for the decision tool
            context: Execution context of the run
            tool_id: Overrides the router's default decision tool

        Raises:
            ExecutionError: If the decision tool reports failure
            InvalidRoutingDecision: If the answer names no candidate
        """
        tool_id = tool_id or self.tool_id
        candidates = self.path_tracker.candidates(router, context)
        prompt = build_routing_prompt(rules, text, candidates)
        logger.debug(f"Routing prompt for {router.id}:\n{prompt}")

        result = await self.gateway.invoke(
            tool_id,
            {**tool_params, "prompt": prompt, "system_prompt": prompt},
            context,
        )
        if not result.success:
            raise ExecutionError(
                result.error or f"{tool_id} failed",
                block_id=router.id,
                block_name=router.title or "Intent Router",
                partial_output=result.output,
            )

        raw_response = str(result.output.get("response", ""))
        try:
            chosen = match_candidate(raw_response, candidates)
        except InvalidRoutingDecision:
            logger.error(
                f"Invalid routing decision from {router.id}: {raw_response!r}, "
                f"available blocks: {[(c.id, c.title) for c in candidates]}"
            )
            raise

        self.path_tracker.select(router, chosen.id, context)
        return RoutingDecision(
            selected_block_id=chosen.id,
            selected_block_type=chosen.type,
            selected_block_title=chosen.title,
            raw_response=raw_response,
        )
