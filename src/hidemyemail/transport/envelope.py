"""
Message construction and parsing at context boundaries.
"""

from typing import Any

from pydantic import TypeAdapter, ValidationError

from hidemyemail.errors import InvalidMessageError
from hidemyemail.models.messages import Message, RawMessage

_MESSAGE_ADAPTER: TypeAdapter[Message] = TypeAdapter(Message)


def build_message(message: Message) -> RawMessage:
    """Serialise a message to the dict that crosses the boundary."""
    return message.to_wire()


def parse_message(raw: Any) -> Message:
    """Parse a received message. Raises InvalidMessageError on unknown shapes."""
    try:
        return _MESSAGE_ADAPTER.validate_python(raw)
    except ValidationError as e:
        raise InvalidMessageError(f"Unrecognised message: {e.error_count()} validation error(s)") from e
