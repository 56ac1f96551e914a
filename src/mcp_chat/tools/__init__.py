"""Tool schema translation and function-name resolution."""

from .bridge import (
    SEPARATOR,
    FunctionDeclaration,
    ResolvedTool,
    ToolResolutionTable,
    function_name,
    split_function_name,
    to_function_declaration,
)
from .schema import (
    FunctionSchema,
    SchemaType,
    convert_parameters,
    convert_schema,
    map_type,
)

__all__ = [
    "SEPARATOR",
    "FunctionDeclaration",
    "FunctionSchema",
    "ResolvedTool",
    "SchemaType",
    "ToolResolutionTable",
    "convert_parameters",
    "convert_schema",
    "function_name",
    "map_type",
    "split_function_name",
    "to_function_declaration",
]
