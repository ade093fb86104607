"""Chat message model shared by the controller, the ledger and the API."""

import time
import uuid
from enum import Enum

from pydantic import BaseModel, Field


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class Reaction(str, Enum):
    NONE = "none"
    LIKE = "like"
    DISLIKE = "dislike"


def now_ms() -> int:
    return int(time.time() * 1000)


class Message(BaseModel):
    role: Role
    content: str
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: int = Field(default_factory=now_ms)
    likes: int = Field(default=0, ge=0)
    dislikes: int = Field(default=0, ge=0)
    userAction: Reaction = Reaction.NONE
    context: str = ""  # history snapshot at creation time
