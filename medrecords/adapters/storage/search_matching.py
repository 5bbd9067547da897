"""In-process evaluation of resource search parameters.

Used by the local stores (in-memory, DuckDB) to answer the subset of FHIR
search the domain services issue. A remote FHIR server evaluates the same
parameters natively.

Semantics:
    - token / reference parameters: exact match; ``system|value`` for identifiers
    - string parameters: case-insensitive prefix match
    - date parameters: optional ``eq``/``ge``/``le``/``gt``/``lt`` prefix,
      compared on the ISO string truncated to the parameter's precision
    - a comma inside a value means OR, a list of values means AND
    - ``_count``, ``_offset`` and ``_sort`` control paging and order
"""

from typing import Any, Callable, Iterable, Optional

from medrecords.domain.constants import CoverageExtension
from medrecords.domain.ports import PersistenceError, Resource, SearchParams
from medrecords.domain.utils import created_at

TOKEN = "token"
STRING = "string"
DATE = "date"

CONTROL_PARAMETERS = ("_count", "_offset", "_sort")


def _identifier_tokens(resource: Resource) -> list[str]:
    tokens = []
    for identifier in resource.get("identifier") or []:
        value = identifier.get("value")
        if value is None:
            continue
        tokens.append(value)
        if identifier.get("system"):
            tokens.append(f"{identifier['system']}|{value}")
    return tokens


def _reference(element: Any) -> list[str]:
    if isinstance(element, dict) and element.get("reference"):
        return [element["reference"]]
    return []


def _extension_reference(url: str) -> Callable[[Resource], list[str]]:
    def extract(resource: Resource) -> list[str]:
        for extension in resource.get("extension") or []:
            if extension.get("url") == url:
                return _reference(extension.get("valueReference"))
        return []
    return extract


def _names(part: str) -> Callable[[Resource], list[str]]:
    def extract(resource: Resource) -> list[str]:
        values = []
        for name in resource.get("name") or []:
            if part in ("family", "name") and name.get("family"):
                values.append(name["family"])
            if part in ("given", "name"):
                values.extend(name.get("given") or [])
        return values
    return extract


def _topic(resource: Resource) -> list[str]:
    values = []
    for topic in resource.get("topic") or []:
        values.extend(coding.get("code") for coding in topic.get("coding") or [] if coding.get("code"))
        if topic.get("text"):
            values.append(topic["text"])
    return values


def _single(key: str) -> Callable[[Resource], list[str]]:
    def extract(resource: Resource) -> list[str]:
        value = resource.get(key)
        return [] if value is None else [str(value)]
    return extract


COMMON_PARAMETERS: dict[str, tuple[str, Callable[[Resource], list[str]]]] = {
    "_id": (TOKEN, _single("id")),
    "_lastUpdated": (DATE, lambda r: [(r.get("meta") or {}).get("lastUpdated")] if (r.get("meta") or {}).get("lastUpdated") else []),
    "identifier": (TOKEN, _identifier_tokens),
    "status": (TOKEN, _single("status")),
}

SEARCH_PARAMETERS: dict[str, dict[str, tuple[str, Callable[[Resource], list[str]]]]] = {
    "Patient": {
        "family": (STRING, _names("family")),
        "given": (STRING, _names("given")),
        "name": (STRING, _names("name")),
        "birthdate": (DATE, _single("birthDate")),
        "gender": (TOKEN, _single("gender")),
        "telecom": (TOKEN, lambda r: [t.get("value") for t in r.get("telecom") or [] if t.get("value")]),
    },
    "Encounter": {
        "subject": (TOKEN, lambda r: _reference(r.get("subject"))),
        "patient": (TOKEN, lambda r: _reference(r.get("subject"))),
        "class": (TOKEN, lambda r: [(r.get("class") or {}).get("code")] if (r.get("class") or {}).get("code") else []),
        "date": (DATE, lambda r: [(r.get("period") or {}).get("start")] if (r.get("period") or {}).get("start") else []),
    },
    "Coverage": {
        "encounter": (TOKEN, _extension_reference(CoverageExtension.ENCOUNTER)),
        "beneficiary": (TOKEN, lambda r: _reference(r.get("beneficiary"))),
        "payor": (TOKEN, lambda r: [ref for payor in r.get("payor") or [] for ref in _reference(payor)]),
        "order": (TOKEN, _single("order")),
    },
    "ActivityDefinition": {
        "title": (STRING, lambda r: [r["title"]] if r.get("title") else []),
        "topic": (TOKEN, _topic),
    },
}

SORT_KEYS: dict[str, Callable[[Resource], str]] = {
    "_lastUpdated": lambda r: (r.get("meta") or {}).get("lastUpdated") or "",
    "date": lambda r: (r.get("period") or {}).get("start") or "",
    "title": lambda r: (r.get("title") or "").lower(),
    "order": lambda r: f"{r.get('order'):03d}" if isinstance(r.get("order"), int) else "999",
}


def parameter_definition(resource_type: str, name: str) -> tuple[str, Callable[[Resource], list[str]]]:
    definition = SEARCH_PARAMETERS.get(resource_type, {}).get(name) or COMMON_PARAMETERS.get(name)
    if definition is None:
        raise PersistenceError(
            f"Unsupported search parameter for {resource_type}: {name}",
            operation="search",
            details={"resource_type": resource_type, "parameter": name},
        )
    return definition


def _match_date(candidate: str, expression: str) -> bool:
    prefix = expression[:2]
    if prefix in ("eq", "ge", "le", "gt", "lt"):
        value = expression[2:]
    else:
        prefix, value = "eq", expression
    truncated = candidate[:len(value)]
    return {
        "eq": truncated == value,
        "ge": truncated >= value,
        "le": truncated <= value,
        "gt": truncated > value,
        "lt": truncated < value,
    }[prefix]


def _match_one(kind: str, candidates: list[str], expression: str) -> bool:
    alternatives = [alt.strip() for alt in expression.split(",") if alt.strip()]
    for alternative in alternatives:
        for candidate in candidates:
            if candidate is None:
                continue
            if kind == STRING and str(candidate).lower().startswith(alternative.lower()):
                return True
            if kind == DATE and _match_date(str(candidate), alternative):
                return True
            if kind == TOKEN and str(candidate) == alternative:
                return True
    return False


def matches(resource: Resource, resource_type: str, params: Optional[SearchParams]) -> bool:
    """Whether a resource satisfies every (non-control) search parameter."""
    for name, value in (params or {}).items():
        if name in CONTROL_PARAMETERS:
            continue
        kind, extract = parameter_definition(resource_type, name)
        candidates = extract(resource)
        expressions = [value] if isinstance(value, str) else list(value)
        if not all(_match_one(kind, candidates, expression) for expression in expressions):
            return False
    return True


def apply_search(resource_type: str, resources: Iterable[Resource], params: Optional[SearchParams]) -> list[Resource]:
    """Filter, sort and page resources already loaded in creation order.

    Raises:
        PersistenceError: On an unsupported parameter or sort key
    """
    params = params or {}
    for name in params:
        if name not in CONTROL_PARAMETERS:
            parameter_definition(resource_type, name)
    selected = [r for r in resources if matches(r, resource_type, params)]

    sort = params.get("_sort")
    if sort:
        for field in reversed([f.strip() for f in str(sort).split(",") if f.strip()]):
            descending = field.startswith("-")
            key = SORT_KEYS.get(field.lstrip("-"))
            if key is None:
                raise PersistenceError(f"Unsupported sort key: {field}", operation="search")
            selected.sort(key=key, reverse=descending)
    else:
        selected.sort(key=created_at)

    offset = int(params.get("_offset") or 0)
    count = params.get("_count")
    if count is not None:
        return selected[offset:offset + int(count)]
    return selected[offset:]
