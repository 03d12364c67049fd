"""Translation of tool-server JSON Schemas into the model's schema types.

Only what function calling needs is carried over: primitive types, one level
of array item typing, one level of nested object properties and required
lists. Anything else (unknown or missing ``type``) becomes a string.
"""
from __future__ import annotations

from typing import Any

from ..tools.schema import Schema, SchemaType

_TYPES = {
    "string": SchemaType.STRING,
    "number": SchemaType.NUMBER,
    "integer": SchemaType.INTEGER,
    "boolean": SchemaType.BOOLEAN,
    "array": SchemaType.ARRAY,
    "object": SchemaType.OBJECT,
}


def convert_type(json_type: Any) -> SchemaType:
    if isinstance(json_type, str):
        return _TYPES.get(json_type, SchemaType.STRING)
    return SchemaType.STRING


def _description(d: dict[str, Any]) -> str:
    desc = d.get("description")
    return desc if isinstance(desc, str) else ""


def _required(d: dict[str, Any]) -> list[str]:
    req = d.get("required")
    if not isinstance(req, list):
        return []
    return [r for r in req if isinstance(r, str)]


def _leaf(prop: dict[str, Any]) -> Schema:
    return Schema(type=convert_type(prop.get("type")), description=_description(prop))


def convert_property(prop: dict[str, Any]) -> Schema:
    schema = _leaf(prop)
    if schema.type is SchemaType.ARRAY:
        items = prop.get("items")
        if isinstance(items, dict):
            schema.items = _leaf(items)
        else:
            schema.items = Schema(SchemaType.STRING)
    elif schema.type is SchemaType.OBJECT:
        props = prop.get("properties")
        if isinstance(props, dict):
            for sub_name, sub in props.items():
                if isinstance(sub, dict):
                    schema.properties[str(sub_name)] = _leaf(sub)
        schema.required = [r for r in _required(prop) if r in schema.properties]
    return schema


def convert_input_schema(input_schema: dict[str, Any]) -> Schema:
    """Top-level tool input schema (always an object) to a parameters schema."""
    params = Schema(type=SchemaType.OBJECT)
    props = input_schema.get("properties")
    if not isinstance(props, dict):
        return params
    for name, prop in props.items():
        if isinstance(prop, dict):
            params.properties[str(name)] = convert_property(prop)
    params.required = [r for r in _required(input_schema) if r in params.properties]
    return params
