"""Browser tool: web navigation and extraction through BrowserService."""

from __future__ import annotations

from typing import Any

from hearth.ai.tools.base import Tool, ToolExecutionContext, ToolResult
from hearth.core.types import ToolName
from hearth.security.policy import SecurityContext
from hearth.services.browser import BrowserService


class BrowserTool(Tool):
    """Drives a persistent browser session; cookies survive between calls."""

    def __init__(self, browser_service: BrowserService):
        self._browser = browser_service

    @property
    def name(self) -> str:
        return ToolName.BROWSER.value

    @property
    def description(self) -> str:
        return (
            "Browse the web with a persistent session. Actions: open (page text), html, "
            "screenshot (saved to disk), evaluate (run JavaScript), click, fill, clear_session. "
            "If url is omitted the action runs on the current page."
        )

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "action": {
                    "type": "string",
                    "enum": ["open", "html", "screenshot", "evaluate", "click", "fill", "clear_session"],
                },
                "url": {"type": "string", "description": "URL to navigate to first"},
                "script": {"type": "string", "description": "JavaScript for 'evaluate'"},
                "selector": {"type": "string", "description": "CSS selector for 'click' and 'fill'"},
                "value": {"type": "string", "description": "Value for 'fill'"},
                "extract_selector": {
                    "type": "string",
                    "description": "CSS selector whose text is returned after 'click'",
                },
                "full_page": {"type": "boolean", "description": "Full-page screenshot"},
            },
            "required": ["action"],
        }

    async def execute(
        self,
        params: dict[str, Any],
        security: SecurityContext,
        context: ToolExecutionContext,
    ) -> ToolResult:
        action = params.get("action", "open")
        url = params.get("url") or None

        match action:
            case "open":
                return ToolResult.ok(await self._browser.open_page(url))
            case "html":
                return ToolResult.ok(await self._browser.get_html(url))
            case "screenshot":
                path = await self._browser.screenshot(url, full_page=bool(params.get("full_page", False)))
                return ToolResult.ok(f"Screenshot saved to {path}")
            case "evaluate":
                script = params.get("script", "")
                if not script:
                    return ToolResult.fail("script is required for evaluate action")
                return ToolResult.ok(await self._browser.evaluate_script(script, url))
            case "click":
                selector = params.get("selector", "")
                if not selector:
                    return ToolResult.fail("selector is required for click action")
                return ToolResult.ok(
                    await self._browser.click_and_extract(selector, url, params.get("extract_selector"))
                )
            case "fill":
                selector = params.get("selector", "")
                if not selector or "value" not in params:
                    return ToolResult.fail("selector and value are required for fill action")
                return ToolResult.ok(await self._browser.fill(selector, str(params["value"]), url))
            case "clear_session":
                return ToolResult.ok(await self._browser.clear_session())
            case _:
                return ToolResult.fail(f"unknown action '{action}'")
