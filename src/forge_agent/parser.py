"""Tool-call extraction from model replies.

Two encodings are supported:

- native: the provider returns structured calls (``RawToolCall``) whose
  arguments are JSON text or a mapping;
- tagged: the reply text carries ``<tool_forge_NAME><param>value</param></tool_forge_NAME>``.

Either way at most one call is honored per reply.
"""

import json
import re
import uuid
from typing import Any, Iterable, Mapping

from .exceptions import InvalidResponseError, ParseError
from .logging import get_logger
from .types import TOOL_WIRE_PREFIX, ProviderReply, RawToolCall, ToolCall, ToolName

logger = get_logger(__name__)

_TOOL_TAG = re.compile(r"<(" + re.escape(TOOL_WIRE_PREFIX) + r"[A-Za-z0-9_]*)>")
_PARAM_TAG = re.compile(r"<([A-Za-z_][A-Za-z0-9_.-]*)>")


def new_call_id() -> str:
    return f"call_{uuid.uuid4().hex[:16]}"


class ToolInvocationParser:
    """Convert a model reply into typed tool calls.

    Args:
        required_params: Required parameter names per tool. Tools missing
            from the mapping are treated as unknown. Defaults to every
            catalog entry with no required parameters.
    """

    def __init__(self, required_params: Mapping[ToolName, Iterable[str]] | None = None):
        if required_params is None:
            required_params = {name: () for name in ToolName}
        self.required_params = {name: tuple(params) for name, params in required_params.items()}

    def _known_names(self) -> str:
        return ", ".join(sorted(name.wire_name for name in self.required_params))

    def _resolve_name(self, token: str) -> ToolName:
        try:
            name = ToolName.from_token(token)
        except ValueError:
            name = None
        if name is None or name not in self.required_params:
            raise ParseError(
                f"No tool with name '{token}' was found. "
                f"Please try again with one of these tools {self._known_names()}",
                tool_name=token,
            )
        return name

    def parse(self, model_reply: ProviderReply | str, tool_supported: bool) -> list[ToolCall]:
        """Extract the tool call (if any) from a reply.

        Args:
            model_reply: The provider reply, or bare reply text
            tool_supported: Whether the agent uses native structured calls

        Returns:
            An empty list, or a list with exactly one call

        Raises:
            InvalidResponseError: Native call payload is malformed
            ParseError: A call names an unknown tool or is incomplete
        """
        if isinstance(model_reply, str):
            reply = ProviderReply(content=model_reply)
        else:
            reply = model_reply

        if tool_supported:
            return self.parse_native(reply.tool_calls)
        return self.parse_tagged(reply.content or "")

    # =========================================================================
    # Native structured calls
    # =========================================================================

    def parse_native(self, raw_calls: list[RawToolCall]) -> list[ToolCall]:
        if not raw_calls:
            return []
        if len(raw_calls) > 1:
            logger.warning(
                f"Model issued {len(raw_calls)} tool calls in one reply; "
                f"executing the first and discarding {len(raw_calls) - 1}"
            )
        return [self._convert_native(raw_calls[0])]

    def _convert_native(self, raw: RawToolCall) -> ToolCall:
        if not raw.name:
            raise InvalidResponseError("Tool call without a function name")

        arguments: Any = raw.arguments
        if arguments is None or arguments == "":
            arguments = {}
        elif isinstance(arguments, str):
            try:
                arguments = json.loads(arguments)
            except json.JSONDecodeError as e:
                raise InvalidResponseError(
                    f"Failed to parse arguments for tool call '{raw.name}': {e}"
                )
        if not isinstance(arguments, dict):
            raise InvalidResponseError(
                f"Arguments for tool call '{raw.name}' must be an object, got {type(arguments).__name__}"
            )

        name = self._resolve_name(raw.name)
        parameters = {
            str(k): v if isinstance(v, str) else json.dumps(v)
            for k, v in arguments.items()
        }
        return ToolCall(call_id=raw.id or new_call_id(), tool_name=name, parameters=parameters)

    # =========================================================================
    # Tagged text calls
    # =========================================================================

    def parse_tagged(self, text: str) -> list[ToolCall]:
        match = _TOOL_TAG.search(text)
        if match is None:
            return []

        wire = match.group(1)
        name = self._resolve_name(wire)
        closing = f"</{wire}>"
        end = text.find(closing, match.end())
        if end == -1:
            raise ParseError(f"Tool call '{wire}' is missing its closing tag {closing}", tool_name=wire)

        parameters = self._parse_parameters(text[match.end():end], wire)
        missing = [p for p in self.required_params[name] if p not in parameters]
        if missing:
            raise ParseError(
                f"Tool call '{wire}' is missing required parameter(s): {', '.join(missing)}",
                tool_name=wire,
            )

        extra = len(_TOOL_TAG.findall(text, end + len(closing)))
        if extra:
            logger.warning(f"Discarded {extra} additional tool call(s) after '{wire}'")

        return [ToolCall(call_id=new_call_id(), tool_name=name, parameters=parameters)]

    def _parse_parameters(self, body: str, wire: str) -> dict[str, str]:
        parameters: dict[str, str] = {}
        pos = 0
        while True:
            match = _PARAM_TAG.search(body, pos)
            if match is None:
                break
            param = match.group(1)
            closing = f"</{param}>"
            end = body.find(closing, match.end())
            if end == -1:
                raise ParseError(
                    f"Parameter '{param}' of '{wire}' is missing its closing tag {closing}",
                    tool_name=wire,
                )
            if param in parameters:
                raise ParseError(f"Parameter '{param}' given twice in '{wire}'", tool_name=wire)
            parameters[param] = body[match.end():end].strip("\r\n")
            pos = end + len(closing)
        return parameters

    @staticmethod
    def serialize(call: ToolCall) -> str:
        """Render a call in the tagged-text encoding."""
        wire = call.tool_name.wire_name
        params = "".join(
            f"<{key}>{value}</{key}>\n" for key, value in call.parameters.items()
        )
        return f"<{wire}>\n{params}</{wire}>"
