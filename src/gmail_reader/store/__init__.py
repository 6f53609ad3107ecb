"""Cached Gmail messages, drafts and labels.

This package holds the per-entity fetch-level cache and the connection that
hands out one shared instance per message, draft or label ID.
"""

from .connection import Connection
from .entities import Attachment, Draft, MailEntity, Message
from .labels import Label, color_index

__all__ = ["Attachment", "Connection", "Draft", "Label", "MailEntity", "Message", "color_index"]
