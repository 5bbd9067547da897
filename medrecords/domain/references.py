"""Typed references between records.

A reference is the string ``Type/id`` embedded in a generic record. Wrapping it
in a value type means a malformed reference is rejected when it is built, not
when something later tries to follow it.
"""

import re
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, model_validator

from medrecords.domain.ports import InvalidReferenceError

RESOURCE_TYPE_PATTERN = re.compile(r"[A-Z][A-Za-z]+")
RESOURCE_ID_PATTERN = re.compile(r"[A-Za-z0-9\-.]{1,64}")


class ResourceReference(BaseModel):
    """Validated ``(resource_type, id)`` pair.

    Parameters:
        resource_type: Resource type name (e.g. ``Patient``)
        id: Resource id (letters, digits, ``-`` and ``.``, at most 64 chars)

    Example Usage:
        ```python
        ref = ResourceReference.of("Patient", "123")
        str(ref)                                    # 'Patient/123'
        ResourceReference.parse("Patient/123") == ref
        ResourceReference.try_parse("garbage")      # None
        ```
    """

    model_config = ConfigDict(frozen=True)

    resource_type: str
    id: str

    @model_validator(mode="after")
    def validate_shape(self) -> "ResourceReference":
        if not RESOURCE_TYPE_PATTERN.fullmatch(self.resource_type):
            raise InvalidReferenceError(
                f"Invalid resource type in reference: {self.resource_type!r}",
                resource_type=self.resource_type,
            )
        if not RESOURCE_ID_PATTERN.fullmatch(self.id):
            raise InvalidReferenceError(
                f"Invalid resource id in reference: {self.id!r}",
                resource_type=self.resource_type,
            )
        return self

    @classmethod
    def of(cls, resource_type: str, resource_id: str) -> "ResourceReference":
        return cls(resource_type=resource_type, id=resource_id)

    @classmethod
    def parse(cls, value: Any, expected_type: Optional[str] = None) -> "ResourceReference":
        """Parse a ``Type/id`` string.

        Parameters:
            value: Reference string
            expected_type: If given, the parsed type must equal it

        Returns:
            ResourceReference

        Raises:
            InvalidReferenceError: If the string is not a well-formed reference
                or names a different resource type
        """
        if not isinstance(value, str) or value.count("/") != 1:
            raise InvalidReferenceError(f"Malformed reference: {value!r}")

        resource_type, resource_id = value.split("/")
        reference = cls.of(resource_type, resource_id)

        if expected_type is not None and reference.resource_type != expected_type:
            raise InvalidReferenceError(
                f"Expected a {expected_type} reference, got {value!r}",
                resource_type=reference.resource_type,
            )
        return reference

    @classmethod
    def try_parse(cls, value: Any, expected_type: Optional[str] = None) -> Optional["ResourceReference"]:
        """Parse a reference string, returning None instead of raising."""
        try:
            return cls.parse(value, expected_type)
        except InvalidReferenceError:
            return None

    def to_fhir(self) -> dict:
        return {"reference": str(self)}

    def __str__(self) -> str:
        return f"{self.resource_type}/{self.id}"
