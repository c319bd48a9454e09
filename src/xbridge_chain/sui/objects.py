"""Typed lookup of created objects in Sui transaction object changes."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Optional

from xbridge_core.exceptions import ObjectExtractionError


def normalize_sui_address(value: str) -> str:
    """Lower-case, 0x-prefixed, zero-padded to 32 bytes."""
    hex_part = value.lower().removeprefix("0x")
    return "0x" + hex_part.rjust(64, "0")


@dataclass(frozen=True)
class ObjectTypeId:
    """A Move struct type identifier: ``package::module::Name``.

    ``package_id`` and ``module`` may be left out to match any package or
    module. Type parameters are ignored when matching.
    """

    name: str
    module: Optional[str] = None
    package_id: Optional[str] = None

    @classmethod
    def parse(cls, type_string: str) -> "ObjectTypeId":
        base = type_string.split("<", 1)[0]
        parts = base.split("::")
        if len(parts) != 3 or not all(parts):
            raise ValueError(f"Not a Move struct type: {type_string!r}")
        package_id, module, name = parts
        return cls(name=name, module=module, package_id=normalize_sui_address(package_id))

    def matches(self, type_string: Optional[str]) -> bool:
        if not type_string:
            return False
        try:
            other = ObjectTypeId.parse(type_string)
        except ValueError:
            return False
        if other.name != self.name:
            return False
        if self.module is not None and other.module != self.module:
            return False
        if self.package_id is not None and other.package_id != normalize_sui_address(self.package_id):
            return False
        return True

    def struct_tag(self) -> str:
        if self.package_id is None or self.module is None:
            raise ValueError(f"{self.name} is not fully qualified")
        return f"{self.package_id}::{self.module}::{self.name}"

    def __str__(self) -> str:
        return "::".join(p for p in (self.package_id, self.module, self.name) if p)


def find_created_objects(
    object_changes: Optional[Iterable[dict[str, Any]]], type_id: ObjectTypeId
) -> list[str]:
    return [
        change["objectId"]
        for change in object_changes or ()
        if change.get("type") == "created"
        and type_id.matches(change.get("objectType"))
        and change.get("objectId")
    ]


def find_created_object_id(
    object_changes: Optional[Iterable[dict[str, Any]]],
    type_id: ObjectTypeId,
    digest: Optional[str] = None,
) -> str:
    """Return the single created object of ``type_id``.

    Raises:
        ObjectExtractionError: zero or several created objects matched
    """
    matches = find_created_objects(object_changes, type_id)
    if len(matches) != 1:
        raise ObjectExtractionError(str(type_id), len(matches), digest=digest)
    return matches[0]
