"""HTML to plain text rendering through an external program."""

from __future__ import annotations

from typing import Protocol

import structlog

from gmail_reader.config import Settings
from gmail_reader.exceptions import RenderError, RenderTimeoutError
from gmail_reader.utils.process import run_command

logger = structlog.get_logger()


class HtmlRenderer(Protocol):
    """Turns an HTML document into terminal-friendly text."""

    async def render_to_text(self, html: str) -> str: ...


class LynxRenderer:
    """Renderer that pipes HTML through ``lynx -dump -stdin`` (or a configured command)."""

    def __init__(self, settings: Settings | None = None) -> None:
        from gmail_reader.config import get_settings

        self.settings = settings or get_settings()
        self.command = list(self.settings.html_renderer_command)
        self.timeout = self.settings.render_timeout

    async def render_to_text(self, html: str) -> str:
        """Render HTML to text.

        Raises:
            RenderTimeoutError: If the renderer did not finish within the timeout.
            RenderError: If the renderer could not be started or exited non-zero.
        """

        try:
            result = await run_command(
                self.command,
                stdin=html.encode("utf-8"),
                timeout=self.timeout,
            )
        except TimeoutError as exc:
            raise RenderTimeoutError(f"{self.command[0]} timed out after {self.timeout}s") from exc
        except OSError as exc:
            raise RenderError(f"cannot run {self.command[0]}: {exc}") from exc

        if result.returncode != 0:
            stderr = result.stderr.decode("utf-8", errors="replace").strip()
            raise RenderError(f"{self.command[0]} exited with {result.returncode}: {stderr}")

        logger.info("html_rendered", input_len=len(html), output_len=len(result.stdout))
        return result.stdout.decode("utf-8", errors="replace")
