"""Custom exceptions for Gmail Reader."""


class GmailReaderError(Exception):
    """Base exception for all Gmail Reader errors."""


class NotFoundError(GmailReaderError):
    """Exception raised when a requested header or field is absent."""


class RemoteFetchError(GmailReaderError):
    """Exception raised for Gmail API related errors."""


class DecodeError(GmailReaderError):
    """Exception raised for malformed base64 or MIME structure."""


class CryptoError(GmailReaderError):
    """Base exception for signature verification and decryption failures."""


class UnsupportedSchemeError(CryptoError):
    """Exception raised when an envelope uses a scheme we cannot process."""


class NoSignatureFoundError(CryptoError):
    """Exception raised when a signed envelope carries no usable signature part."""


class BadSignatureError(CryptoError):
    """Exception raised when a signature is present but does not verify."""


class DecryptFailedError(CryptoError):
    """Exception raised when an encrypted envelope cannot be decrypted."""


class RenderError(GmailReaderError):
    """Exception raised when the HTML renderer fails."""


class RenderTimeoutError(RenderError):
    """Exception raised when the HTML renderer exceeds its deadline."""


class ConfigurationError(GmailReaderError):
    """Exception raised for configuration related errors."""


class AuthenticationError(GmailReaderError):
    """Exception raised for authentication failures."""
