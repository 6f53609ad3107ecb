"""Reduce a MIME part tree to the single best text rendering."""

from __future__ import annotations

from collections.abc import Iterator

import structlog

from gmail_reader import display
from gmail_reader.exceptions import DecodeError, RenderError, RenderTimeoutError
from gmail_reader.gmail import transcoding
from gmail_reader.models import MimeContainer, MimeLeaf, MimePart
from gmail_reader.rendering.html import HtmlRenderer

logger = structlog.get_logger()

COMPOSITE_TYPES = frozenset(
    {"multipart/alternative", "multipart/related", "multipart/signed", "multipart/mixed"}
)
# Consumed by the trust engine, never rendered.
SIGNATURE_TYPES = frozenset(
    {"application/pkcs7-signature", "application/x-pkcs7-signature", "application/pgp-signature"}
)


def part_is_attachment(part: MimePart) -> bool:
    """A part is an attachment iff it has a Content-Disposition other than ``inline``.

    The whole value is compared, so ``inline; filename="logo.png"`` is an attachment.
    """

    disposition = part.header("Content-Disposition")
    if disposition is None:
        return False
    return disposition.strip().lower() != "inline"


def iter_attachment_parts(root: MimePart) -> Iterator[MimeLeaf]:
    """Yield every attachment leaf in the tree, depth first, once each."""

    if isinstance(root, MimeLeaf):
        if part_is_attachment(root) and root.mime_type not in SIGNATURE_TYPES:
            yield root
        return
    for child in root.parts:
        yield from iter_attachment_parts(child)


class BodyMaterializer:
    """Renders part trees to text, delegating HTML to an external renderer."""

    def __init__(self, renderer: HtmlRenderer) -> None:
        self.renderer = renderer

    async def reduce(self, root: MimePart, prefer_html: bool = False) -> str | None:
        """Reduce a part tree to text.

        Args:
            root: Root of the part tree.
            prefer_html: Prefer ``text/html`` alternatives over ``text/plain``.

        Returns:
            The rendered text, or None when no part is usable as a body.
        """

        if isinstance(root, MimeLeaf):
            if part_is_attachment(root):
                return None
            logger.info("single_part_body", mime_type=root.mime_type, input_len=len(root.data))
            return await self._render_leaf(root)

        logger.info("multipart_body", mime_type=root.mime_type, parts=len(root.parts))
        return await self._reduce_container(root, prefer_html)

    async def _reduce_container(self, part: MimeContainer, prefer_html: bool) -> str | None:
        want, accept = "text/plain", "text/html"
        if prefer_html:
            want, accept = accept, want

        preferred: list[MimeLeaf | str] = []
        alternate: list[MimeLeaf | str] = []
        for child in part.parts:
            if part_is_attachment(child) or child.mime_type in SIGNATURE_TYPES:
                continue
            if isinstance(child, MimeContainer):
                if child.mime_type not in COMPOSITE_TYPES:
                    logger.warning("unknown_composite_type", mime_type=child.mime_type)
                    continue
                text = await self._reduce_container(child, prefer_html)
                if text is not None:
                    # However it was rendered, it is acceptable either way.
                    preferred.append(text)
                    alternate.append(text)
                continue

            logger.debug("alt_mimetype", mime_type=child.mime_type)
            if child.mime_type == want:
                preferred.append(child)
            elif child.mime_type == accept:
                alternate.append(child)
            else:
                logger.warning("unknown_mimetype_in_alt", mime_type=child.mime_type)

        for candidates in (preferred, alternate):
            texts = await self._materialize(candidates)
            if texts:
                return "\n".join(texts)
        return None

    async def _materialize(self, candidates: list[MimeLeaf | str]) -> list[str]:
        texts = []
        for item in candidates:
            text = item if isinstance(item, str) else await self._render_leaf(item)
            if text and text.strip():
                texts.append(text)
        return texts

    async def _render_leaf(self, leaf: MimeLeaf) -> str | None:
        try:
            text = transcoding.decode_text(
                leaf.data, transcoding.charset_of(leaf.header("Content-Type"))
            )
        except DecodeError as exc:
            logger.warning("part_decode_failed", mime_type=leaf.mime_type, error=str(exc))
            return display.error_marker(f"Could not decode {leaf.mime_type} part", exc)

        text = transcoding.strip_unprintable(text)
        if leaf.mime_type != "text/html":
            return text

        try:
            rendered = await self.renderer.render_to_text(text)
        except RenderTimeoutError as exc:
            logger.warning("html_render_timeout", error=str(exc))
            return None
        except RenderError as exc:
            logger.error("html_render_failed", error=str(exc))
            return display.error_marker("Rendering HTML failed", exc)
        return f"{display.html_marker()}\n{transcoding.strip_unprintable(rendered)}"
