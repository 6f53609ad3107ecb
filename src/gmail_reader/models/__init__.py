"""Data models for Gmail Reader.

This module contains the fetch level ordering, the trust status model and the
re-exported MIME tree types.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from gmail_reader.models.mime import MimeContainer, MimeLeaf, MimePart


class FetchLevel(str, Enum):
    """How much of a message is known locally.

    The value is the Gmail API ``format`` used to fetch at that level.
    """

    EMPTY = "empty"
    MINIMAL = "minimal"
    METADATA = "metadata"
    FULL = "full"

    @property
    def rank(self) -> int:
        return _LEVEL_ORDER.index(self)

    def satisfies(self, want: "FetchLevel") -> bool:
        """Return whether data at this level is enough for ``want``."""
        return satisfies(self, want)


_LEVEL_ORDER = (FetchLevel.EMPTY, FetchLevel.MINIMAL, FetchLevel.METADATA, FetchLevel.FULL)


def satisfies(have: FetchLevel, want: FetchLevel) -> bool:
    return have.rank >= want.rank


class TrustStatus(BaseModel):
    """Outcome of verifying or decrypting a cryptographic envelope."""

    model_config = ConfigDict(frozen=True)

    verified: bool = Field(description="Whether a signature was checked at all")
    good: bool = Field(description="Whether the signature is good")
    signer: str = Field(default="", description="Signer identity reported by the engine")
    detail: str = Field(default="", description="Free-form engine output for diagnostics")


class InlineSignatureFailure(BaseModel):
    """A clear-signed block in the body that did not verify."""

    model_config = ConfigDict(frozen=True)

    block_start: int = Field(description="Offset of the block in the unannotated body")
    reason: str = Field(description="Why verification did not succeed")
    status: Optional[TrustStatus] = Field(
        default=None,
        description="Engine result if one was returned",
    )


__all__ = [
    "FetchLevel",
    "InlineSignatureFailure",
    "MimeContainer",
    "MimeLeaf",
    "MimePart",
    "TrustStatus",
    "satisfies",
]
