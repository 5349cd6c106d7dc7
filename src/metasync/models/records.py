"""Reference-data records served by the metadata cache."""

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Union

RecordId = Union[int, str]


class Category(str, Enum):
    """Reference-data kinds tracked independently by the metadata cache."""

    TAGS = "tags"
    CORRESPONDENTS = "correspondents"
    DOCUMENT_TYPES = "document_types"

    @property
    def label(self) -> str:
        """Human-readable name for log messages."""
        return self.value.replace("_", " ")


@dataclass(frozen=True)
class CachedRecord:
    """
    Immutable snapshot of one upstream tag, correspondent or document type.

    Identity is ``id``. Any upstream fields beyond ``id`` and ``name``
    (colour, matching rules, document counts, ...) are kept read-only in
    ``attributes``.

    Example:
        record = CachedRecord.from_api({"id": 1, "name": "invoice", "color": "#a6cee3"})
        record.attributes["color"]  # "#a6cee3"
    """

    id: RecordId
    name: str
    attributes: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def from_api(cls, payload: Mapping[str, Any]) -> "CachedRecord":
        """Build a record from an upstream JSON object."""
        if "id" not in payload or payload["id"] is None:
            raise ValueError(f"Upstream record has no id: {dict(payload)!r}")
        extra = {k: v for k, v in payload.items() if k not in ("id", "name")}
        return cls(
            id=payload["id"],
            name=str(payload.get("name") or ""),
            attributes=MappingProxyType(extra),
        )

    @classmethod
    def coerce(cls, record: Union["CachedRecord", Mapping[str, Any]]) -> "CachedRecord":
        """Accept either a record or a raw upstream mapping."""
        if isinstance(record, cls):
            return record
        return cls.from_api(record)

    def to_dict(self) -> dict[str, Any]:
        """Convert back to a plain upstream-shaped dict."""
        data: dict[str, Any] = {"id": self.id, "name": self.name}
        data.update(self.attributes)
        return data
