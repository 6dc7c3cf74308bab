"""Boolean coercion for configuration values.

TOML files carry real booleans, but environment overrides and CI inputs
arrive as strings, so these helpers accept the usual truthy and falsy
spellings.
"""

from __future__ import annotations

__all__ = ["coerce_bool"]

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}


def coerce_bool(value: object, *, default: bool) -> bool:
    """Coerce ``value`` to bool, returning ``default`` for None or blanks.

    Raises
    ------
    ValueError
        If ``value`` is a string that cannot be interpreted as a boolean.

    Examples
    --------
    >>> coerce_bool("yes", default=False)
    True
    >>> coerce_bool("", default=True)
    True
    """
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        normalised = value.strip().lower()
        if not normalised:
            return default
        if normalised in _TRUTHY:
            return True
        if normalised in _FALSY:
            return False
    msg = f"Cannot interpret {value!r} as boolean"
    raise ValueError(msg)

