"""Network fetch tool backed by httpx."""

from typing import Any

import httpx

from ..exceptions import ToolExecutionError
from ..logging import get_logger
from ..types import ToolName
from .base import BaseTool

logger = get_logger(__name__)

DEFAULT_MAX_LENGTH = 40_000


class FetchTool(BaseTool):
    """Fetch a URL and return its body as text, truncated to ``max_length``."""

    def __init__(self, timeout: float = 30.0, max_length: int = DEFAULT_MAX_LENGTH):
        self.timeout = timeout
        self.max_length = max_length

    @property
    def tool_name(self) -> ToolName:
        return ToolName.NET_FETCH

    @property
    def description(self) -> str:
        return (
            "Fetch a URL over HTTP(S) and return the response body as text. "
            f"Output longer than {self.max_length} characters is truncated."
        )

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "url": {
                    "type": "string",
                    "description": "The http or https URL to fetch.",
                }
            },
            "required": ["url"],
        }

    async def execute(self, url: str) -> str:
        if not url.startswith(("http://", "https://")):
            raise ToolExecutionError(self.tool_name.value, f"Unsupported URL scheme: {url}")

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(url, follow_redirects=True)
        except httpx.RequestError as e:
            logger.warning(f"Request error fetching {url}: {e}")
            raise ToolExecutionError(self.tool_name.value, f"Request failed: {e}")

        if response.status_code >= 400:
            raise ToolExecutionError(
                self.tool_name.value, f"HTTP {response.status_code} fetching {url}"
            )

        text = response.text
        if len(text) > self.max_length:
            text = text[: self.max_length] + f"\n... (truncated, {len(response.text)} characters total)"
        return text
