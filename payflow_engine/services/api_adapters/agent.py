"""
AI Agent Provider Adapter

Runs one chat-completion turn with the node's declared tools and reports the
tool calls the model asked for.
"""

import json
from typing import Any, Dict, List, Optional

from ...models.credential import ProviderCredential
from ..openai_client import (
    DEFAULT_MAX_TOKENS,
    DEFAULT_MODEL,
    DEFAULT_TEMPERATURE,
    build_messages,
    create_chat_completion,
    resolve_api_key,
    usage_dict,
)
from .base import AdapterContext, ProviderAdapter, ValidationError, register_adapter


def _tool_spec(tool: Any) -> Dict[str, Any]:
    """Accept either a bare {name, description, parameters} or a full OpenAI tool entry."""
    if not isinstance(tool, dict):
        raise ValidationError(f"Tool definitions must be objects, got {type(tool).__name__}")
    if tool.get("type") == "function" and isinstance(tool.get("function"), dict):
        return tool
    if not tool.get("name"):
        raise ValidationError("Every tool needs a name")
    return {
        "type": "function",
        "function": {
            "name": tool["name"],
            "description": tool.get("description", ""),
            "parameters": tool.get("parameters") or {"type": "object", "properties": {}},
        },
    }


def _tool_calls(message: Any) -> List[Dict[str, Any]]:
    calls = []
    for call in getattr(message, "tool_calls", None) or []:
        arguments = call.function.arguments
        try:
            arguments = json.loads(arguments) if arguments else {}
        except (TypeError, ValueError):
            pass
        calls.append({"id": call.id, "name": call.function.name, "arguments": arguments})
    return calls


@register_adapter("agent")
class AgentAdapter(ProviderAdapter):
    """AI agent adapter: agent.tools."""

    supported_operations = ["agent.tools"]
    credential_provider = "openai"

    async def execute_operation(
        self,
        operation: str,
        input_data: Dict[str, Any],
        credentials: Optional[ProviderCredential],
        context: AdapterContext,
    ) -> Dict[str, Any]:
        prompt = input_data.get("prompt") or input_data.get("userPrompt")
        if not prompt:
            previous = input_data.get("previous")
            if previous is None:
                raise ValidationError("Prompt is required")
            prompt = previous if isinstance(previous, str) else json.dumps(previous, default=str)

        tools = input_data.get("tools") or []
        if not isinstance(tools, list):
            raise ValidationError("Tools must be a list")
        tool_specs = [_tool_spec(tool) for tool in tools]

        api_key = resolve_api_key(credentials)
        model = input_data.get("model") or DEFAULT_MODEL

        params: Dict[str, Any] = {
            "model": model,
            "messages": build_messages(input_data.get("systemPrompt"), str(prompt)),
            "max_tokens": int(input_data.get("maxTokens") or DEFAULT_MAX_TOKENS),
            "temperature": float(input_data.get("temperature", DEFAULT_TEMPERATURE)),
        }
        if tool_specs:
            params["tools"] = tool_specs

        response = await create_chat_completion(api_key, timeout=self.timeout, **params)
        message = response.choices[0].message
        tool_calls = _tool_calls(message)
        self.logger.info(f"Agent turn finished with {len(tool_calls)} tool call(s)")

        return {
            "content": message.content or "",
            "toolCalls": tool_calls,
            "model": getattr(response, "model", model),
            "usage": usage_dict(response),
        }
