from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class SchemaType(str, Enum):
    STRING = "STRING"
    NUMBER = "NUMBER"
    INTEGER = "INTEGER"
    BOOLEAN = "BOOLEAN"
    ARRAY = "ARRAY"
    OBJECT = "OBJECT"


@dataclass
class Schema:
    """Function-parameter schema in the model's own type system."""

    type: SchemaType
    description: str = ""
    properties: dict[str, "Schema"] = field(default_factory=dict)
    items: "Schema | None" = None
    required: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"type": self.type.value}
        if self.description:
            d["description"] = self.description
        if self.properties:
            d["properties"] = {k: v.to_dict() for k, v in self.properties.items()}
        if self.items is not None:
            d["items"] = self.items.to_dict()
        if self.required:
            d["required"] = list(self.required)
        return d


def string(description: str = "") -> Schema:
    return Schema(SchemaType.STRING, description)


def number(description: str = "") -> Schema:
    return Schema(SchemaType.NUMBER, description)


def boolean(description: str = "") -> Schema:
    return Schema(SchemaType.BOOLEAN, description)


def array_of(items: Schema, description: str = "") -> Schema:
    return Schema(SchemaType.ARRAY, description, items=items)


def obj(properties: dict[str, Schema], required: list[str] | None = None) -> Schema:
    return Schema(SchemaType.OBJECT, properties=properties, required=list(required or []))
