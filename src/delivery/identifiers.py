"""Canonical identifier handling.

Order data arrives with identifiers in numeric form (``1042``), string form
(``"1042"``) or as opaque document keys. Everything is normalized to a single
string form before it reaches the store, so lookups never branch on the
representation.
"""

from uuid import UUID

from delivery.errors import InvalidIdentifier


def canonical_id(value) -> str:
    """Return the canonical string form of an order, worker or record id.

    >>> canonical_id(1042)
    '1042'
    >>> canonical_id(" 1042 ")
    '1042'
    >>> canonical_id(1042.0)
    '1042'
    """
    if value is None or isinstance(value, bool):
        raise InvalidIdentifier(f"Invalid identifier: {value!r}")

    if isinstance(value, int):
        return str(value)

    if isinstance(value, float):
        if not value.is_integer():
            raise InvalidIdentifier(f"Non-integral numeric identifier: {value!r}")
        return str(int(value))

    if isinstance(value, UUID):
        return str(value)

    if isinstance(value, str):
        text = value.strip()
        if not text:
            raise InvalidIdentifier("Identifier must not be blank")
        # "007" and "7" are the same numeric order
        if text.isdigit():
            return str(int(text))
        return text

    raise InvalidIdentifier(f"Unsupported identifier type: {type(value).__name__}")
