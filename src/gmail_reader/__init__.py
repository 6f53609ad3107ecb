"""Gmail Reader - trust-annotated rendering of Gmail messages and drafts.

This package fetches Gmail messages at increasing levels of detail, reduces
their MIME trees to readable text, and verifies or decrypts OpenPGP and
S/MIME envelopes.
"""

__version__ = "0.1.0"

from gmail_reader.config import Settings, get_settings

__all__ = ["Settings", "get_settings", "__version__"]
