"""Helpers for reading and writing generic record parts.

Extensions are addressed by URL and identifiers by system, never by their
position in a list.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterable, Optional

from medrecords.domain.ports import Resource

MONEY_QUANTUM = Decimal("0.01")

# Significant digits a rounded amount may have and still be written as an exact JSON number
MONEY_MAX_DIGITS = 15


def find_extension(resource: Optional[Resource], url: str) -> Optional[dict]:
    """Return the first extension with the given URL, or None."""
    if not resource:
        return None
    for extension in resource.get("extension") or []:
        if isinstance(extension, dict) and extension.get("url") == url:
            return extension
    return None


def without_extensions(extensions: Optional[Iterable[dict]], urls: Iterable[str]) -> list[dict]:
    """Return the extensions whose URL is not in ``urls``, order preserved."""
    excluded = set(urls)
    return [ext for ext in extensions or [] if not (isinstance(ext, dict) and ext.get("url") in excluded)]


def get_identifier_value(resource: Optional[Resource], system: str) -> Optional[str]:
    """Return the value of the first identifier with the given system."""
    if not resource:
        return None
    for identifier in resource.get("identifier") or []:
        if isinstance(identifier, dict) and identifier.get("system") == system:
            return identifier.get("value")
    return None


def is_blank(value: Any) -> bool:
    """True for None, empty strings, whitespace-only strings and NaN cells."""
    if value is None:
        return True
    if isinstance(value, float) and value != value:
        return True
    if isinstance(value, str) and value.strip() == "":
        return True
    return False


def clean_text(value: Any) -> Optional[str]:
    """Strip a text value, mapping blanks to None."""
    if is_blank(value):
        return None
    return str(value).strip()


def to_money(value: Any) -> Decimal:
    """Convert a number or numeric string to a Decimal.

    Raises:
        ValueError: If the value is not numeric
    """
    if isinstance(value, bool):
        raise ValueError(f"Not a number: {value!r}")
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation as e:
        raise ValueError(f"Not a number: {value!r}") from e
    if not amount.is_finite():
        raise ValueError(f"Not a finite number: {value!r}")
    return amount


def quantize_money(amount: Decimal) -> Decimal:
    """Round a money amount to 2 decimal places (half up)."""
    return amount.quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP)


def created_at(resource: Resource) -> str:
    """Creation timestamp of a stored resource as an ISO string.

    Local stores stamp ``meta.created``; remote stores only provide
    ``meta.lastUpdated``, which is used instead. Missing values sort first.
    """
    meta = resource.get("meta") or {}
    return meta.get("created") or meta.get("lastUpdated") or ""
