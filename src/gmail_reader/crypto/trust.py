"""Detection and processing of signed and encrypted envelopes.

Handles RFC 3156 ``multipart/signed`` and ``multipart/encrypted`` messages,
S/MIME detached signatures, and clear-signed OpenPGP blocks embedded in
plain text.
"""

from __future__ import annotations

import email
import re
from dataclasses import dataclass
from email.message import Message

import structlog

from gmail_reader import display
from gmail_reader.crypto.base import CryptoEngine
from gmail_reader.exceptions import (
    CryptoError,
    DecryptFailedError,
    NoSignatureFoundError,
    UnsupportedSchemeError,
)
from gmail_reader.gmail import transcoding
from gmail_reader.gmail.client import GmailClient
from gmail_reader.models import InlineSignatureFailure, MimeContainer, MimeLeaf, MimePart, TrustStatus

logger = structlog.get_logger()

PGP_SIGNATURE = "application/pgp-signature"
SMIME_SIGNATURES = frozenset({"application/x-pkcs7-signature", "application/pkcs7-signature"})
PGP_ENCRYPTED = "application/pgp-encrypted"
CIPHERTEXT = "application/octet-stream"

INLINE_SIGNED_RE = re.compile(
    r"-----BEGIN PGP SIGNED MESSAGE-----.*?"
    r"-----BEGIN PGP SIGNATURE-----.*?"
    r"-----END PGP SIGNATURE-----",
    re.DOTALL,
)


@dataclass(frozen=True)
class DecryptedBody:
    """Result of opening an encrypted envelope.

    Exactly one of ``root`` (multipart plaintext) and ``text`` (single part)
    is set.
    """

    status: TrustStatus
    root: MimePart | None = None
    text: str | None = None


def canonical_signed_data(part: MimeLeaf) -> bytes:
    """Rebuild the bytes a detached signature covers: headers, blank line, body."""

    head = "\r\n".join(f"{name}: {value}" for name, value in part.headers)
    return (head + "\r\n\r\n").encode("utf-8") + transcoding.decode(part.data)


def message_to_part(msg: Message) -> MimePart:
    """Convert a parsed ``email`` message into a MimePart tree.

    Text leaves are normalized to UTF-8; attachment leaves keep their bytes.
    """

    ctype = msg.get_content_type()
    if msg.is_multipart():
        return MimeContainer(
            mime_type=ctype,
            parts=tuple(message_to_part(p) for p in msg.get_payload()),
            headers=tuple(msg.items()),
        )

    filename = msg.get_filename() or ""
    disposition = msg.get("Content-Disposition")
    if disposition is not None and disposition.strip().lower() != "inline":
        kept = tuple((k, v) for k, v in msg.items() if k.lower() != "content-transfer-encoding")
        data = msg.get_payload(decode=True) or b""
        return MimeLeaf(ctype, transcoding.encode(data), kept, filename)

    text = transcoding.normalize(msg, _raw_payload(msg))
    headers: tuple[tuple[str, str], ...] = (("Content-Type", f"{ctype}; charset=utf-8"),)
    if disposition is not None:
        headers += (("Content-Disposition", disposition),)
    return MimeLeaf(ctype, transcoding.encode(text), headers, filename)


def _raw_payload(msg: Message) -> bytes:
    payload = msg.get_payload()
    if isinstance(payload, bytes):
        return payload
    # Parsed from bytes: non-ASCII octets are carried as surrogate escapes.
    return str(payload or "").encode("ascii", errors="surrogateescape")


class TrustEngine:
    """Runs envelope checks against an injected crypto engine."""

    def __init__(self, crypto: CryptoEngine, client: GmailClient) -> None:
        self.crypto = crypto
        self.client = client

    async def verify_signed(self, message_id: str, root: MimeContainer) -> TrustStatus:
        """Verify a ``multipart/signed`` envelope.

        Raises:
            NoSignatureFoundError: If no recognized signature part exists.
            UnsupportedSchemeError: If the signed content cannot be rebuilt.
            CryptoError: If the crypto engine fails.
            RemoteFetchError: If the signature attachment cannot be fetched.
        """

        content: MimePart | None = None
        signature: MimeLeaf | None = None
        for part in root.parts:
            if part.mime_type == PGP_SIGNATURE or part.mime_type in SMIME_SIGNATURES:
                if isinstance(part, MimeLeaf):
                    signature = part
            elif content is None:
                content = part
            else:
                logger.warning("unexpected_signed_part", message_id=message_id, mime_type=part.mime_type)

        if signature is None:
            raise NoSignatureFoundError("no supported attached signature")
        if content is None:
            raise UnsupportedSchemeError("signed envelope has no content part")
        if isinstance(content, MimeContainer):
            raise UnsupportedSchemeError(f"cannot rebuild signed {content.mime_type} content")

        signed_data = canonical_signed_data(content)
        sig = await self._part_bytes(message_id, signature)
        if signature.mime_type == PGP_SIGNATURE:
            status = await self.crypto.verify(signed_data, sig)
        else:
            status = await self.crypto.verify_smime(signed_data, sig)

        logger.info(
            "signature_checked",
            message_id=message_id,
            scheme=signature.mime_type,
            good=status.good,
            signer=status.signer,
        )
        return status

    async def decrypt(self, message_id: str, root: MimeContainer) -> DecryptedBody:
        """Decrypt a ``multipart/encrypted`` envelope.

        Raises:
            DecryptFailedError: If the envelope is malformed or decryption fails.
            DecodeError: If the ciphertext or plaintext is malformed.
            RemoteFetchError: If the ciphertext attachment cannot be fetched.
        """

        meta: MimePart | None = None
        data: MimePart | None = None
        for part in root.parts:
            if part.mime_type == PGP_ENCRYPTED:
                meta = part
            elif part.mime_type == CIPHERTEXT:
                data = part
            else:
                logger.warning("unexpected_encrypted_part", message_id=message_id, mime_type=part.mime_type)

        if meta is None:
            logger.warning("encrypted_part_missing_metadata", message_id=message_id)
        if not isinstance(data, MimeLeaf):
            raise DecryptFailedError("encrypted envelope has no ciphertext part")

        ciphertext = await self._part_bytes(message_id, data)
        plaintext, status = await self.crypto.decrypt(ciphertext)

        inner = email.message_from_bytes(plaintext)
        if inner.is_multipart():
            logger.info("multipart_encrypted", message_id=message_id, mime_type=inner.get_content_type())
            return DecryptedBody(status=status, root=message_to_part(inner))

        text = transcoding.normalize(inner, _raw_payload(inner))
        return DecryptedBody(status=status, text=transcoding.strip_unprintable(text))

    async def annotate_inline(self, body: str) -> tuple[str, list[InlineSignatureFailure]]:
        """Check clear-signed blocks in a rendered body.

        Good blocks are wrapped in signer markers. Anything else is left as is
        and reported as a failure. The envelope trust status is never touched.

        Returns:
            The annotated body and the failures.
        """

        pieces: list[str] = []
        failures: list[InlineSignatureFailure] = []
        pos = 0
        for match in INLINE_SIGNED_RE.finditer(body):
            block = match.group(0)
            pieces.append(body[pos:match.start()])
            pos = match.end()

            try:
                status = await self.crypto.verify_inline(block)
            except CryptoError as exc:
                logger.error("inline_signature_check_failed", error=str(exc))
                failures.append(InlineSignatureFailure(block_start=match.start(), reason=str(exc)))
                pieces.append(block)
                continue

            if not status.good:
                logger.warning("inline_signature_not_good", signer=status.signer, detail=status.detail)
                failures.append(
                    InlineSignatureFailure(
                        block_start=match.start(),
                        reason="signature is there, but not good",
                        status=status,
                    )
                )
                pieces.append(block)
                continue

            pieces.append(display.signed_block(status.signer, block))

        pieces.append(body[pos:])
        return "".join(pieces), failures

    async def _part_bytes(self, message_id: str, part: MimeLeaf) -> bytes:
        data = part.data
        if part.attachment_id:
            data = await self.client.get_attachment(message_id, part.attachment_id)
        return transcoding.decode(data)
