"""
EchoLog Backend — Identifier Classification
=============================================

What:  Decides, from its shape alone, what a path identifier refers to.
Why:   Routes such as GET /api/audio/{identifier} accept either a record id
       or a stored blob filename. Classifying first lets each route run
       exactly one lookup instead of probing the database with guesses.

Kinds:
    RECORD_ID     canonical UUID             "0b6f8a52-2f1e-4c53-9c1a-5d0d7c1b9e11"
    TEMPORARY_ID  unsaved transcript id      "tr-9f2c4e1ab37d"
    FILENAME      safe name with extension   "0b6f...-meeting.wav"
    INVALID       anything else
"""

import enum
import re
import uuid
from typing import Optional

from echolog.exceptions import ValidationError

TEMPORARY_ID_PREFIX = "tr-"

_TEMPORARY_ID = re.compile(r"^tr-[0-9a-f]{8,32}$")
_FILENAME = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]{0,254}\.[A-Za-z0-9]{1,8}$")
_UUID = re.compile(
    r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"
)


class IdentifierKind(str, enum.Enum):
    RECORD_ID = "record_id"
    TEMPORARY_ID = "temporary_id"
    FILENAME = "filename"
    INVALID = "invalid"


def new_temporary_id() -> str:
    return f"{TEMPORARY_ID_PREFIX}{uuid.uuid4().hex[:12]}"


def classify_identifier(value: Optional[str]) -> IdentifierKind:
    if not value:
        return IdentifierKind.INVALID
    if _UUID.match(value):
        return IdentifierKind.RECORD_ID
    if _TEMPORARY_ID.match(value):
        return IdentifierKind.TEMPORARY_ID
    if ".." not in value and _FILENAME.match(value):
        return IdentifierKind.FILENAME
    return IdentifierKind.INVALID


def parse_record_id(value: str, field: str = "id") -> uuid.UUID:
    """Returns the UUID for a RECORD_ID identifier, or raises ValidationError."""
    if classify_identifier(value) is not IdentifierKind.RECORD_ID:
        raise ValidationError(
            message=f"'{value}' is not a valid identifier.",
            field=field,
        )
    return uuid.UUID(value)
