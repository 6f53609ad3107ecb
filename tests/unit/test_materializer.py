"""Unit tests for reducing MIME trees to text."""

import pytest

from gmail_reader import display
from gmail_reader.gmail.transcoding import encode
from gmail_reader.models import MimeContainer, MimeLeaf
from gmail_reader.rendering.materializer import BodyMaterializer, iter_attachment_parts, part_is_attachment
from tests.fakes import FakeRenderer


def text(mime_type: str, body: str, **kwargs) -> MimeLeaf:
    return MimeLeaf(mime_type, encode(body), **kwargs)


def attached(filename: str) -> MimeLeaf:
    return MimeLeaf(
        "application/pdf",
        attachment_id="att-" + filename,
        headers=(("Content-Disposition", f'attachment; filename="{filename}"'),),
        filename=filename,
    )


ALTERNATIVE = MimeContainer(
    "multipart/alternative",
    parts=(text("text/plain", "hello"), text("text/html", "<b>hello</b>")),
)


class TestPartIsAttachment:
    def test_attachment_disposition(self) -> None:
        assert part_is_attachment(attached("x.pdf"))

    def test_inline_disposition_with_filename_is_attachment(self) -> None:
        leaf = text("image/png", "", headers=(("Content-Disposition", 'inline; filename="a.png"'),))

        assert part_is_attachment(leaf)

    def test_bare_inline_disposition(self) -> None:
        leaf = text("text/plain", "x", headers=(("Content-Disposition", " Inline "),))

        assert not part_is_attachment(leaf)

    def test_no_disposition(self) -> None:
        assert not part_is_attachment(text("text/plain", "x"))


class TestBodyMaterializer:
    """Test suite for BodyMaterializer.reduce."""

    @pytest.mark.asyncio
    async def test_alternative_prefers_plain_without_rendering(self) -> None:
        renderer = FakeRenderer()

        result = await BodyMaterializer(renderer).reduce(ALTERNATIVE, prefer_html=False)

        assert result == "hello"
        assert renderer.calls == []

    @pytest.mark.asyncio
    async def test_alternative_prefers_html_when_asked(self) -> None:
        renderer = FakeRenderer()

        result = await BodyMaterializer(renderer).reduce(ALTERNATIVE, prefer_html=True)

        assert result == f"{display.html_marker()}\nrendered:<b>hello</b>"
        assert renderer.calls == ["<b>hello</b>"]

    @pytest.mark.asyncio
    async def test_single_plain_leaf_is_stripped(self) -> None:
        result = await BodyMaterializer(FakeRenderer()).reduce(text("text/plain", "a\x1b[2Jb\r\n"))

        assert result == "a[2Jb\n"

    @pytest.mark.asyncio
    async def test_single_html_leaf_is_rendered(self) -> None:
        renderer = FakeRenderer()

        result = await BodyMaterializer(renderer).reduce(text("text/html", "<p>x</p>"))

        assert result is not None
        assert result.startswith(display.html_marker())
        assert renderer.calls == ["<p>x</p>"]

    @pytest.mark.asyncio
    async def test_root_attachment_has_no_body(self) -> None:
        assert await BodyMaterializer(FakeRenderer()).reduce(attached("x.pdf")) is None

    @pytest.mark.asyncio
    async def test_attachments_are_excluded(self) -> None:
        root = MimeContainer("multipart/mixed", parts=(text("text/plain", "see attached"), attached("x.pdf")))

        assert await BodyMaterializer(FakeRenderer()).reduce(root) == "see attached"

    @pytest.mark.asyncio
    async def test_nested_composite_counts_for_both_preferences(self) -> None:
        root = MimeContainer("multipart/mixed", parts=(ALTERNATIVE, text("text/plain", "footer")))

        assert await BodyMaterializer(FakeRenderer()).reduce(root) == "hello\nfooter"

    @pytest.mark.asyncio
    async def test_nested_composite_used_when_only_alternate_leaves(self) -> None:
        root = MimeContainer(
            "multipart/mixed",
            parts=(MimeContainer("multipart/related", parts=(text("text/plain", "inner"),)),),
        )

        assert await BodyMaterializer(FakeRenderer()).reduce(root, prefer_html=True) == "inner"

    @pytest.mark.asyncio
    async def test_empty_preferred_falls_back_to_alternate(self) -> None:
        root = MimeContainer(
            "multipart/alternative",
            parts=(text("text/plain", "   "), text("text/html", "<i>only</i>")),
        )

        result = await BodyMaterializer(FakeRenderer()).reduce(root)

        assert result == f"{display.html_marker()}\nrendered:<i>only</i>"

    @pytest.mark.asyncio
    async def test_unknown_composite_is_skipped(self) -> None:
        root = MimeContainer(
            "multipart/mixed",
            parts=(MimeContainer("multipart/x-custom", parts=(text("text/plain", "hidden"),)),),
        )

        assert await BodyMaterializer(FakeRenderer()).reduce(root) is None

    @pytest.mark.asyncio
    async def test_signature_part_is_not_rendered(self) -> None:
        root = MimeContainer(
            "multipart/signed",
            parts=(
                text("text/plain", "signed text"),
                text("application/pgp-signature", "-----BEGIN PGP SIGNATURE-----"),
            ),
        )

        assert await BodyMaterializer(FakeRenderer()).reduce(root) == "signed text"

    @pytest.mark.asyncio
    async def test_render_timeout_degrades_leaf_to_nothing(self) -> None:
        renderer = FakeRenderer(timeout=True)

        assert await BodyMaterializer(renderer).reduce(text("text/html", "<p>slow</p>")) is None

        result = await BodyMaterializer(renderer).reduce(ALTERNATIVE, prefer_html=True)
        assert result == "hello"

    @pytest.mark.asyncio
    async def test_malformed_leaf_becomes_marker(self) -> None:
        result = await BodyMaterializer(FakeRenderer()).reduce(MimeLeaf("text/plain", "+/+/"))

        assert result is not None
        assert result.startswith(display.RED + "[Could not decode text/plain part")

    @pytest.mark.asyncio
    async def test_charset_is_honoured(self) -> None:
        leaf = MimeLeaf(
            "text/plain",
            encode("café".encode("iso-8859-1")),
            headers=(("Content-Type", "text/plain; charset=iso-8859-1"),),
        )

        assert await BodyMaterializer(FakeRenderer()).reduce(leaf) == "café"


def test_iter_attachment_parts_visits_whole_tree_once() -> None:
    inner = MimeContainer("multipart/mixed", parts=(attached("b.pdf"),))
    root = MimeContainer("multipart/mixed", parts=(text("text/plain", "x"), attached("a.pdf"), inner))

    assert [leaf.filename for leaf in iter_attachment_parts(root)] == ["a.pdf", "b.pdf"]
