"""Crypto engine backed by the ``gpg`` and ``openssl`` command line tools.

gpg is run with ``--status-fd`` and its machine-readable ``[GNUPG:]`` lines
are parsed into a :class:`TrustStatus`. Signatures and clear-signed blocks are
written to a private temporary directory because gpg reads detached
signatures from a file.
"""

from __future__ import annotations

import os
import tempfile
from collections.abc import Sequence
from pathlib import Path

import structlog

from gmail_reader.config import Settings
from gmail_reader.exceptions import CryptoError, DecryptFailedError
from gmail_reader.models import TrustStatus
from gmail_reader.utils.process import CommandResult, run_command

logger = structlog.get_logger()

_STATUS_PREFIX = "[GNUPG:] "
_SIGNATURE_KEYWORDS = frozenset({"GOODSIG", "BADSIG", "EXPSIG", "EXPKEYSIG", "REVKEYSIG"})
# Keywords worth keeping in TrustStatus.detail.
_DETAIL_KEYWORDS = frozenset(
    {
        "GOODSIG",
        "BADSIG",
        "ERRSIG",
        "EXPSIG",
        "EXPKEYSIG",
        "REVKEYSIG",
        "NO_PUBKEY",
        "NO_SECKEY",
        "DECRYPTION_OKAY",
        "DECRYPTION_FAILED",
        "TRUST_UNDEFINED",
        "TRUST_NEVER",
        "TRUST_MARGINAL",
        "TRUST_FULLY",
        "TRUST_ULTIMATE",
    }
)


def status_lines(output: bytes | str) -> list[list[str]]:
    """Extract tokenized ``[GNUPG:]`` status lines from gpg output."""

    if isinstance(output, bytes):
        output = output.decode("utf-8", errors="replace")
    lines = []
    for line in output.splitlines():
        if line.startswith(_STATUS_PREFIX):
            tokens = line[len(_STATUS_PREFIX):].split(" ")
            if tokens and tokens[0]:
                lines.append(tokens)
    return lines


def parse_status(output: bytes | str) -> TrustStatus:
    """Build a TrustStatus from gpg ``--status-fd`` output."""

    verified = False
    good = False
    bad = False
    signer = ""
    detail: list[str] = []

    for tokens in status_lines(output):
        keyword = tokens[0]
        if keyword in _DETAIL_KEYWORDS:
            detail.append(keyword)
        if keyword in _SIGNATURE_KEYWORDS:
            verified = True
            # <keyword> <long keyid> <user id...>
            if len(tokens) > 2:
                signer = " ".join(tokens[2:])
            elif len(tokens) == 2 and not signer:
                signer = tokens[1]
            if keyword == "GOODSIG":
                good = True
            else:
                bad = True
        elif keyword == "VALIDSIG" and len(tokens) > 1:
            detail.append(f"VALIDSIG {tokens[1]}")

    return TrustStatus(
        verified=verified,
        good=good and not bad,
        signer=signer,
        detail=" ".join(detail),
    )


class GnuPG:
    """OpenPGP verification/decryption via gpg, S/MIME verification via openssl."""

    def __init__(self, settings: Settings | None = None) -> None:
        from gmail_reader.config import get_settings

        self.settings = settings or get_settings()
        self.gpg = self.settings.gpg_binary
        self.openssl = self.settings.openssl_binary
        self.timeout = self.settings.crypto_timeout

    async def verify(self, signed_data: bytes, signature: bytes) -> TrustStatus:
        with tempfile.TemporaryDirectory(prefix="gmail-reader-") as tmp:
            sig_path = Path(tmp) / "signature.asc"
            sig_path.write_bytes(signature)
            result = await self._run(
                [self.gpg, "--batch", "--no-tty", "--status-fd", "1", "--verify", str(sig_path), "-"],
                stdin=signed_data,
            )
        return self._verification_status(result)

    async def verify_inline(self, armored_block: str) -> TrustStatus:
        with tempfile.TemporaryDirectory(prefix="gmail-reader-") as tmp:
            block_path = Path(tmp) / "message.asc"
            block_path.write_text(armored_block, encoding="utf-8")
            result = await self._run(
                [self.gpg, "--batch", "--no-tty", "--status-fd", "1", "--verify", str(block_path)],
            )
        return self._verification_status(result)

    async def decrypt(self, ciphertext: bytes) -> tuple[bytes, TrustStatus]:
        result = await self._run(
            [self.gpg, "--batch", "--no-tty", "--status-fd", "2", "--decrypt"],
            stdin=ciphertext,
        )
        # Exit status also reflects embedded signatures; the status lines decide.
        keywords = {tokens[0] for tokens in status_lines(result.stderr)}
        if "DECRYPTION_OKAY" not in keywords or "DECRYPTION_FAILED" in keywords:
            raise DecryptFailedError(_human_output(result.stderr) or f"gpg exited with {result.returncode}")
        status = parse_status(result.stderr)
        logger.info(
            "gpg_decrypted",
            plaintext_len=len(result.stdout),
            returncode=result.returncode,
            signed=status.verified,
            good=status.good,
            signer=status.signer,
        )
        return result.stdout, status

    async def verify_smime(self, signed_data: bytes, signature: bytes) -> TrustStatus:
        with tempfile.TemporaryDirectory(prefix="gmail-reader-") as tmp:
            content_path = Path(tmp) / "content"
            sig_path = Path(tmp) / "signature.p7s"
            signer_path = Path(tmp) / "signer.pem"
            content_path.write_bytes(signed_data)
            sig_path.write_bytes(signature)
            result = await self._run(
                [
                    self.openssl, "smime", "-verify", "-binary",
                    "-inform", "DER",
                    "-in", str(sig_path),
                    "-content", str(content_path),
                    "-signer", str(signer_path),
                    "-out", os.devnull,
                ]
            )
            signer = ""
            if signer_path.exists() and signer_path.stat().st_size > 0:
                signer = await self._smime_signer(signer_path)

        detail = result.stderr.decode("utf-8", errors="replace").strip()
        return TrustStatus(verified=True, good=result.returncode == 0, signer=signer, detail=detail)

    async def _smime_signer(self, signer_path: Path) -> str:
        result = await self._run([self.openssl, "x509", "-noout", "-email", "-subject", "-in", str(signer_path)])
        lines = result.stdout.decode("utf-8", errors="replace").splitlines()
        return lines[0].strip() if lines else ""

    def _verification_status(self, result: CommandResult) -> TrustStatus:
        lines = status_lines(result.stdout)
        if not lines:
            raise CryptoError(_human_output(result.stderr) or f"gpg exited with {result.returncode}")
        status = parse_status(result.stdout)
        logger.info("gpg_verified", good=status.good, signer=status.signer, detail=status.detail)
        return status

    async def _run(self, argv: Sequence[str], stdin: bytes | None = None) -> CommandResult:
        try:
            return await run_command(argv, stdin=stdin, timeout=self.timeout)
        except TimeoutError as exc:
            raise CryptoError(f"{argv[0]} timed out after {self.timeout}s") from exc
        except OSError as exc:
            raise CryptoError(f"cannot run {argv[0]}: {exc}") from exc


def _human_output(output: bytes) -> str:
    text = output.decode("utf-8", errors="replace")
    return "\n".join(line for line in text.splitlines() if not line.startswith(_STATUS_PREFIX)).strip()
