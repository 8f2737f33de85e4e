# Namespace for ORM models.
from .journal import JournalEntry
from .media import AttachmentRole, MediaAsset, MediaAttachment

__all__ = ["AttachmentRole", "JournalEntry", "MediaAsset", "MediaAttachment"]
