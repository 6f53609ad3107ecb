"""Unit tests for data models."""

import pytest
from pydantic import ValidationError

from gmail_reader.models import FetchLevel, InlineSignatureFailure, MimeContainer, MimeLeaf, TrustStatus, satisfies

_ORDER = [FetchLevel.EMPTY, FetchLevel.MINIMAL, FetchLevel.METADATA, FetchLevel.FULL]


class TestFetchLevel:
    """Test suite for the fetch level ordering."""

    @pytest.mark.parametrize("have", _ORDER)
    @pytest.mark.parametrize("want", _ORDER)
    def test_satisfies_follows_order(self, have: FetchLevel, want: FetchLevel) -> None:
        expected = _ORDER.index(have) >= _ORDER.index(want)

        assert satisfies(have, want) is expected
        assert have.satisfies(want) is expected

    def test_values_are_gmail_formats(self) -> None:
        assert FetchLevel.MINIMAL.value == "minimal"
        assert FetchLevel.METADATA.value == "metadata"
        assert FetchLevel.FULL.value == "full"


class TestTrustStatus:
    def test_is_frozen(self) -> None:
        status = TrustStatus(verified=True, good=True, signer="Alice")

        with pytest.raises(ValidationError):
            status.good = False  # type: ignore[misc]

    def test_defaults(self) -> None:
        status = TrustStatus(verified=False, good=False)

        assert status.signer == ""
        assert status.detail == ""

    def test_inline_failure_keeps_status(self) -> None:
        status = TrustStatus(verified=True, good=False, signer="Mallory")
        failure = InlineSignatureFailure(block_start=4, reason="bad", status=status)

        assert failure.status is not None
        assert failure.status.signer == "Mallory"


class TestMimeTree:
    def test_header_lookup_is_case_insensitive(self) -> None:
        leaf = MimeLeaf("text/plain", headers=(("Content-Disposition", "inline"),))

        assert leaf.header("content-disposition") == "inline"
        assert leaf.header("Content-Type") is None

    def test_container_holds_children_in_order(self) -> None:
        a, b = MimeLeaf("text/plain"), MimeLeaf("text/html")
        root = MimeContainer("multipart/alternative", parts=(a, b))

        assert root.parts == (a, b)
