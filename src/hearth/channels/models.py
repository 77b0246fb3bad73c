"""Message shapes crossing the channel boundary."""

from __future__ import annotations

import mimetypes
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional


@dataclass(frozen=True, slots=True)
class Attachment:
    data: bytes
    media_type: str
    filename: str = "attachment"

    @classmethod
    def from_path(cls, path: Path) -> Attachment:
        media_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        return cls(data=path.read_bytes(), media_type=media_type, filename=path.name)


@dataclass(frozen=True, slots=True)
class OutgoingMessage:
    """A message addressed to one recipient on one channel account.

    ``account_id`` selects the bot account when a channel runs several.
    """

    to: str
    text: str
    account_id: Optional[str] = None
    parse_mode: Optional[str] = None
    reply_to_message_id: Optional[str] = None
    attachments: list[Attachment] = field(default_factory=list)
