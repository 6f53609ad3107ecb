"""Interface of the external OpenPGP / S-MIME engine."""

from __future__ import annotations

from typing import Protocol

from gmail_reader.models import TrustStatus


class CryptoEngine(Protocol):
    """Verifies signatures and decrypts envelopes on behalf of the trust engine.

    Implementations raise :class:`~gmail_reader.exceptions.CryptoError`
    subclasses when the engine itself fails. A signature that is present but
    does not check out is reported as a ``TrustStatus`` with ``good=False``.
    """

    async def verify(self, signed_data: bytes, signature: bytes) -> TrustStatus:
        """Check a detached OpenPGP signature over ``signed_data``."""
        ...

    async def verify_smime(self, signed_data: bytes, signature: bytes) -> TrustStatus:
        """Check a detached DER-encoded S/MIME signature over ``signed_data``."""
        ...

    async def verify_inline(self, armored_block: str) -> TrustStatus:
        """Check a clear-signed OpenPGP block."""
        ...

    async def decrypt(self, ciphertext: bytes) -> tuple[bytes, TrustStatus]:
        """Decrypt an OpenPGP message.

        Raises:
            DecryptFailedError: If the message cannot be decrypted.
        """
        ...
