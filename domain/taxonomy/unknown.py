"""Level-scoped Unknown marker codes ("cannot classify beyond this point")."""

import re

UNKNOWN_LABEL = "Unknown"

_UNKNOWN_CODE_RE = re.compile(r"-9+")


def unknown_code_for_level(level: int) -> str:
    """
    Return the Unknown marker code for a level.

    Examples:
        >>> unknown_code_for_level(1)
        '-9'
        >>> unknown_code_for_level(3)
        '-999'
    """
    if level < 1:
        raise ValueError(f"level must be >= 1, got {level}")
    return "-" + "9" * level


def is_unknown_node_code(code: object) -> bool:
    """True for any Unknown marker code, including the legacy level-agnostic '-99'."""
    if code is None:
        return False
    return _UNKNOWN_CODE_RE.fullmatch(str(code).strip()) is not None
