"""Translation of JSON Schema fragments into function-calling schemas."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class SchemaType(str, Enum):
    """Schema type tags understood by the model provider."""

    STRING = "STRING"
    NUMBER = "NUMBER"
    INTEGER = "INTEGER"
    BOOLEAN = "BOOLEAN"
    ARRAY = "ARRAY"
    OBJECT = "OBJECT"


_TYPE_MAPPING: Dict[str, SchemaType] = {
    "string": SchemaType.STRING,
    "number": SchemaType.NUMBER,
    "integer": SchemaType.INTEGER,
    "boolean": SchemaType.BOOLEAN,
    "array": SchemaType.ARRAY,
    "object": SchemaType.OBJECT,
}


@dataclass
class FunctionSchema:
    """Provider-neutral function parameter schema.

    Attributes:
        type: Type tag of this node.
        description: Optional description.
        properties: Child schemas for OBJECT nodes.
        required: Required property names for OBJECT nodes.
        items: Element schema for ARRAY nodes.
        enum: Allowed values, as strings.
    """

    type: SchemaType
    description: Optional[str] = None
    properties: Dict[str, "FunctionSchema"] = field(default_factory=dict)
    required: List[str] = field(default_factory=list)
    items: Optional["FunctionSchema"] = None
    enum: Optional[List[str]] = None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize in the provider's schema shape."""
        result: Dict[str, Any] = {"type": self.type.value}
        if self.description:
            result["description"] = self.description
        if self.type == SchemaType.OBJECT:
            if self.properties:
                result["properties"] = {
                    name: child.to_dict() for name, child in self.properties.items()
                }
            if self.required:
                result["required"] = list(self.required)
        if self.items is not None:
            result["items"] = self.items.to_dict()
        if self.enum:
            result["enum"] = list(self.enum)
        return result


def map_type(json_type: Any) -> SchemaType:
    """Map a JSON Schema ``type`` value to a provider type tag.

    Nullable unions such as ``["string", "null"]`` use the first non-null
    entry. Unknown or absent types map to STRING.
    """
    if isinstance(json_type, list):
        candidates = [t for t in json_type if t != "null"]
        json_type = candidates[0] if candidates else None
    if isinstance(json_type, str):
        return _TYPE_MAPPING.get(json_type.lower(), SchemaType.STRING)
    return SchemaType.STRING


def convert_schema(schema: Optional[Dict[str, Any]]) -> FunctionSchema:
    """Convert one JSON Schema node (recursively) into a FunctionSchema."""
    schema = schema or {}
    schema_type = map_type(schema.get("type"))

    converted = FunctionSchema(
        type=schema_type,
        description=schema.get("description"),
    )

    if schema.get("enum"):
        converted.enum = [str(value) for value in schema["enum"]]

    if schema_type == SchemaType.OBJECT:
        properties = schema.get("properties") or {}
        converted.properties = {
            name: convert_schema(child if isinstance(child, dict) else {})
            for name, child in properties.items()
        }
        converted.required = list(schema.get("required") or [])
    elif schema_type == SchemaType.ARRAY:
        items = schema.get("items")
        if isinstance(items, dict):
            converted.items = convert_schema(items)
        else:
            converted.items = FunctionSchema(type=SchemaType.STRING)

    return converted


def convert_parameters(
    properties: Optional[Dict[str, Any]],
    required: Optional[List[str]],
) -> FunctionSchema:
    """Build the top-level OBJECT schema of a function's parameters."""
    return convert_schema(
        {
            "type": "object",
            "properties": properties or {},
            "required": required or [],
        }
    )
