"""Unit tests for subprocess helpers and the external HTML renderer."""

import asyncio
import sys
import time

import pytest

from gmail_reader.config import Settings
from gmail_reader.exceptions import RenderError, RenderTimeoutError
from gmail_reader.rendering.html import LynxRenderer
from gmail_reader.utils.process import run_command

UPPERCASE = [sys.executable, "-c", "import sys; sys.stdout.write(sys.stdin.read().upper())"]
SLEEP = [sys.executable, "-c", "import time; time.sleep(30)"]


class TestRunCommand:
    """Test suite for run_command."""

    @pytest.mark.asyncio
    async def test_captures_output(self) -> None:
        result = await run_command(UPPERCASE, stdin=b"hello", timeout=10)

        assert result.returncode == 0
        assert result.stdout == b"HELLO"

    @pytest.mark.asyncio
    async def test_nonzero_exit_is_returned(self) -> None:
        result = await run_command([sys.executable, "-c", "import sys; sys.exit(3)"], timeout=10)

        assert result.returncode == 3

    @pytest.mark.asyncio
    async def test_timeout_kills_child(self) -> None:
        st = time.monotonic()

        with pytest.raises(TimeoutError):
            await run_command(SLEEP, timeout=0.2)

        assert time.monotonic() - st < 10

    @pytest.mark.asyncio
    async def test_cancellation_propagates(self) -> None:
        task = asyncio.create_task(run_command(SLEEP, timeout=30))
        await asyncio.sleep(0.2)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task


class TestLynxRenderer:
    """Test suite for LynxRenderer with a stand-in command."""

    @pytest.mark.asyncio
    async def test_renders_through_command(self) -> None:
        renderer = LynxRenderer(Settings(html_renderer_command=UPPERCASE))

        assert await renderer.render_to_text("<p>hi</p>") == "<P>HI</P>"

    @pytest.mark.asyncio
    async def test_timeout(self) -> None:
        renderer = LynxRenderer(Settings(html_renderer_command=SLEEP, render_timeout=0.2))

        with pytest.raises(RenderTimeoutError):
            await renderer.render_to_text("<p>slow</p>")

    @pytest.mark.asyncio
    async def test_failing_command(self) -> None:
        command = [sys.executable, "-c", "import sys; sys.stderr.write('boom'); sys.exit(1)"]
        renderer = LynxRenderer(Settings(html_renderer_command=command))

        with pytest.raises(RenderError, match="boom"):
            await renderer.render_to_text("<p>x</p>")

    @pytest.mark.asyncio
    async def test_missing_program(self, tmp_path) -> None:
        renderer = LynxRenderer(Settings(html_renderer_command=[str(tmp_path / "no-such-lynx")]))

        with pytest.raises(RenderError):
            await renderer.render_to_text("<p>x</p>")
