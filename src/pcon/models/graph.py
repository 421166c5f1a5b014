"""Object arena for a parsed project document.

Every element carrying an ``ObjectID`` (numeric) or ``ObjectUID`` (GUID) becomes an
``XmlObject``. Reference elements (``ObjectRef`` / ``ObjectURef``) are recorded
against the nearest enclosing object. Objects never own each other; traversal goes
through identifier lookups on the ``ObjectArena``.
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from enum import Enum

from pydantic import BaseModel, ConfigDict


class Namespace(str, Enum):
    """Identifier namespace."""

    ID = "id"  # ObjectID / ObjectRef
    UID = "uid"  # ObjectUID / ObjectURef


@dataclass(frozen=True)
class ObjectKey:
    """Namespaced object identifier."""

    namespace: Namespace
    value: str

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Reference:
    """A reference field inside an object."""

    source: ObjectKey
    field: str
    target: ObjectKey
    element: ET.Element = field(compare=False, hash=False, repr=False)


class DanglingReference(BaseModel):
    """A reference whose target is not defined anywhere in the document."""

    model_config = ConfigDict(frozen=True)

    source_id: str
    source_tag: str
    field: str
    target_id: str

    @property
    def message(self) -> str:
        return (
            f"{self.source_tag} {self.source_id}: {self.field} points to "
            f"missing object {self.target_id}"
        )


@dataclass
class XmlObject:
    """One identified element of the document."""

    key: ObjectKey
    tag: str
    element: ET.Element
    order: int
    refs: list[Reference] = field(default_factory=list)

    @property
    def attributes(self) -> dict[str, str]:
        return dict(self.element.attrib)

    def text(self, path: str, default: str | None = None) -> str | None:
        """Text of the first element at ``path`` (ElementTree path syntax)."""
        node = self.element.find(path)
        if node is None or node.text is None:
            return default
        value = node.text.strip()
        return value if value else default

    def int_value(self, path: str, default: int | None = None) -> int | None:
        raw = self.text(path)
        if raw is None:
            return default
        try:
            return int(raw)
        except ValueError:
            try:
                return int(float(raw))
            except ValueError:
                return default

    def flag(self, path: str) -> bool:
        return (self.text(path) or "").lower() in {"true", "1", "yes"}

    def refs_named(self, field_name: str) -> list[Reference]:
        """All references recorded under a field tag, in document order."""
        return [r for r in self.refs if r.field == field_name]

    def ref_at(self, path: str) -> ObjectKey | None:
        """Target key of the reference element found at ``path``."""
        node = self.element.find(path)
        if node is None:
            return None
        return reference_target(node)

    def refs_at(self, path: str) -> list[ObjectKey]:
        """Target keys of all reference elements matching ``path``."""
        keys = []
        for node in self.element.findall(path):
            key = reference_target(node)
            if key is not None:
                keys.append(key)
        return keys


def object_key(element: ET.Element) -> ObjectKey | None:
    """Identifier an element defines, if any."""
    uid = element.get("ObjectUID")
    if uid:
        return ObjectKey(Namespace.UID, uid)
    oid = element.get("ObjectID")
    if oid:
        return ObjectKey(Namespace.ID, oid)
    return None


def reference_target(element: ET.Element) -> ObjectKey | None:
    """Identifier a reference element points at, if any."""
    uref = element.get("ObjectURef")
    if uref:
        return ObjectKey(Namespace.UID, uref)
    ref = element.get("ObjectRef")
    if ref:
        return ObjectKey(Namespace.ID, ref)
    return None


class ObjectArena:
    """Index of all identified objects plus the references that failed to resolve."""

    def __init__(
        self,
        root: ET.Element,
        objects: dict[ObjectKey, XmlObject],
        unresolved: list[DanglingReference],
    ) -> None:
        self.root = root
        self._objects = objects
        self.unresolved = unresolved

    def __len__(self) -> int:
        return len(self._objects)

    def __contains__(self, key: ObjectKey) -> bool:
        return key in self._objects

    def get(self, key: ObjectKey | None) -> XmlObject | None:
        if key is None:
            return None
        return self._objects.get(key)

    def lookup(self, value: str | None) -> XmlObject | None:
        """Find an object by raw identifier value in either namespace."""
        if value is None:
            return None
        return self._objects.get(ObjectKey(Namespace.UID, value)) or self._objects.get(
            ObjectKey(Namespace.ID, value)
        )

    def objects(self, *tags: str) -> list[XmlObject]:
        """Objects with any of ``tags`` in document order (all objects when empty)."""
        selected = [o for o in self._objects.values() if not tags or o.tag in tags]
        return sorted(selected, key=lambda o: o.order)

    def follow(self, obj: XmlObject | None, path: str) -> XmlObject | None:
        """Resolve the reference at ``path`` inside ``obj``."""
        if obj is None:
            return None
        return self.get(obj.ref_at(path))

    def follow_all(self, obj: XmlObject | None, path: str) -> list[XmlObject]:
        if obj is None:
            return []
        resolved = (self.get(key) for key in obj.refs_at(path))
        return [o for o in resolved if o is not None]

    def max_numeric_id(self) -> int:
        """Highest numeric ObjectID in use (0 when none)."""
        highest = 0
        for key in self._objects:
            if key.namespace is Namespace.ID and key.value.isdigit():
                highest = max(highest, int(key.value))
        return highest
