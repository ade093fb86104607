"""Like/dislike toggle transitions for a single message."""

from models import Message, Reaction


def _dec(count: int) -> int:
    return max(count - 1, 0)


def apply_like(message: Message) -> Message:
    """Return the message after a like press.

    none -> like, dislike -> like (moving the vote), like -> none (toggle off).
    """
    if message.userAction == Reaction.LIKE:
        update = {"likes": _dec(message.likes), "userAction": Reaction.NONE}
    elif message.userAction == Reaction.DISLIKE:
        update = {
            "likes": message.likes + 1,
            "dislikes": _dec(message.dislikes),
            "userAction": Reaction.LIKE,
        }
    else:
        update = {"likes": message.likes + 1, "userAction": Reaction.LIKE}
    return message.model_copy(update=update)


def apply_dislike(message: Message) -> Message:
    """Mirror of apply_like with the two counters swapped."""
    if message.userAction == Reaction.DISLIKE:
        update = {"dislikes": _dec(message.dislikes), "userAction": Reaction.NONE}
    elif message.userAction == Reaction.LIKE:
        update = {
            "likes": _dec(message.likes),
            "dislikes": message.dislikes + 1,
            "userAction": Reaction.DISLIKE,
        }
    else:
        update = {"dislikes": message.dislikes + 1, "userAction": Reaction.DISLIKE}
    return message.model_copy(update=update)
