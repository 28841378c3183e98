"""Translation between database IDs and the IDs handed out to callers.

External IDs are the database ID shifted by a fixed offset so the first
uploads don't get IDs like 1, 2, 3. This is obfuscation, not security.
"""

INVALID_ID = -1
_MAX_DB_ID = 2**63 - 1


def to_external_id(internal_id: int, offset: int) -> int:
    return internal_id + offset


def to_internal_id(external_id: str | int | None, offset: int) -> int:
    """Convert an external ID to a database ID.

    Only ints and integer strings are accepted. Anything else (floats, None,
    booleans, non-numeric strings) or a value outside the key range gives
    INVALID_ID.
    """
    if isinstance(external_id, bool) or not isinstance(external_id, (int, str)):
        return INVALID_ID
    try:
        internal_id = int(external_id) - offset
    except ValueError:
        return INVALID_ID
    if internal_id < 1 or internal_id > _MAX_DB_ID:
        return INVALID_ID
    return internal_id
