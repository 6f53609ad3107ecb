"""Signature verification and decryption of mail envelopes.

The trust engine detects signed and encrypted envelopes and delegates the
cryptography to an injected engine; :class:`GnuPG` is the bundled one.
"""

from .base import CryptoEngine
from .gnupg import GnuPG
from .trust import DecryptedBody, TrustEngine

__all__ = ["CryptoEngine", "DecryptedBody", "GnuPG", "TrustEngine"]
