"""Normalized capability and result types.

The wire format is a union of optional, loosely typed fields. Raw
dictionaries are resolved into these types once, at the normalization
boundary; downstream code works on the types only.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Literal, Optional, Union


@dataclass
class ToolInputSchema:
    """JSON-schema-like description of a tool's arguments."""

    type: str = "object"
    properties: Optional[Dict[str, Any]] = None
    required: Optional[List[str]] = None

    @classmethod
    def from_wire(cls, data: Optional[Dict[str, Any]]) -> "ToolInputSchema":
        data = data or {}
        return cls(
            type=data.get("type", "object"),
            properties=data.get("properties"),
            required=data.get("required"),
        )


@dataclass
class NormalizedTool:
    """A tool exposed by an MCP server.

    Attributes:
        name: Tool name.
        description: Optional human description.
        input_schema: Argument schema.
    """

    name: str
    description: Optional[str] = None
    input_schema: ToolInputSchema = field(default_factory=ToolInputSchema)

    @classmethod
    def from_wire(cls, data: Dict[str, Any]) -> "NormalizedTool":
        return cls(
            name=data["name"],
            description=data.get("description"),
            input_schema=ToolInputSchema.from_wire(data.get("inputSchema")),
        )


@dataclass
class PromptArgument:
    name: str
    description: Optional[str] = None
    required: Optional[bool] = None


@dataclass
class NormalizedPrompt:
    """A prompt template exposed by an MCP server."""

    name: str
    description: Optional[str] = None
    arguments: Optional[List[PromptArgument]] = None

    @classmethod
    def from_wire(cls, data: Dict[str, Any]) -> "NormalizedPrompt":
        arguments = data.get("arguments")
        return cls(
            name=data["name"],
            description=data.get("description"),
            arguments=None
            if arguments is None
            else [
                PromptArgument(
                    name=arg["name"],
                    description=arg.get("description"),
                    required=arg.get("required"),
                )
                for arg in arguments
            ],
        )


@dataclass
class NormalizedResource:
    """A readable resource exposed by an MCP server."""

    uri: str
    name: str
    description: Optional[str] = None
    mime_type: Optional[str] = None

    @classmethod
    def from_wire(cls, data: Dict[str, Any]) -> "NormalizedResource":
        return cls(
            uri=data["uri"],
            name=data.get("name", data["uri"]),
            description=data.get("description"),
            mime_type=data.get("mimeType"),
        )


@dataclass
class TextContent:
    text: str
    type: Literal["text"] = "text"


@dataclass
class ImageContent:
    """An image, inline (``data``) or rehomed (``url``), never both."""

    mime_type: str
    data: Optional[str] = None
    url: Optional[str] = None
    type: Literal["image"] = "image"

    @property
    def is_inline(self) -> bool:
        return self.data is not None


@dataclass
class ResourceContent:
    """A resource embedded in a tool result or prompt message."""

    uri: Optional[str] = None
    mime_type: Optional[str] = None
    text: Optional[str] = None
    type: Literal["resource"] = "resource"


@dataclass
class UnknownContent:
    """A content item of a type this client does not understand.

    The original type tag is preserved so nothing silently disappears.
    """

    original_type: str
    type: Literal["unknown"] = "unknown"


ContentItem = Union[TextContent, ImageContent, ResourceContent, UnknownContent]


def normalize_content(item: Dict[str, Any]) -> ContentItem:
    """Resolve one wire content item into its tagged type."""
    kind = item.get("type")
    if kind == "text":
        return TextContent(text=item.get("text", ""))
    if kind == "image":
        return ImageContent(
            mime_type=item.get("mimeType", "image/png"),
            data=item.get("data"),
        )
    if kind == "resource":
        resource = item.get("resource") or {}
        return ResourceContent(
            uri=resource.get("uri"),
            mime_type=resource.get("mimeType"),
            text=resource.get("text"),
        )
    return UnknownContent(original_type=str(kind))


@dataclass
class NormalizedToolResult:
    """Ordered content of a tool call plus the server's error flag."""

    content: List[ContentItem] = field(default_factory=list)
    is_error: bool = False

    @classmethod
    def from_wire(cls, data: Dict[str, Any]) -> "NormalizedToolResult":
        return cls(
            content=[normalize_content(item) for item in data.get("content") or []],
            is_error=bool(data.get("isError", False)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "content": [asdict(item) for item in self.content],
            "isError": self.is_error,
        }

    def text(self) -> str:
        """Concatenate the textual parts of the result."""
        parts: List[str] = []
        for item in self.content:
            if isinstance(item, TextContent):
                parts.append(item.text)
            elif isinstance(item, ResourceContent) and item.text is not None:
                parts.append(item.text)
        return "\n".join(parts)

    def to_model_payload(self) -> Dict[str, Any]:
        """Summarize the result for the model without inline binary data."""
        images = []
        for item in self.content:
            if isinstance(item, ImageContent):
                images.append(item.url or f"inline {item.mime_type} image")
        payload: Dict[str, Any] = {"result": self.text()}
        if images:
            payload["images"] = images
        skipped = [i.original_type for i in self.content if isinstance(i, UnknownContent)]
        if skipped:
            payload["unsupported_content"] = skipped
        return payload


@dataclass
class PromptMessage:
    role: str
    content: ContentItem


@dataclass
class PromptResult:
    description: Optional[str] = None
    messages: List[PromptMessage] = field(default_factory=list)

    @classmethod
    def from_wire(cls, data: Dict[str, Any]) -> "PromptResult":
        return cls(
            description=data.get("description"),
            messages=[
                PromptMessage(
                    role=msg.get("role", "user"),
                    content=normalize_content(msg.get("content") or {}),
                )
                for msg in data.get("messages") or []
            ],
        )


@dataclass
class ResourceContents:
    uri: str
    mime_type: Optional[str] = None
    text: Optional[str] = None
    blob: Optional[str] = None


@dataclass
class ResourceResult:
    contents: List[ResourceContents] = field(default_factory=list)

    @classmethod
    def from_wire(cls, data: Dict[str, Any]) -> "ResourceResult":
        return cls(
            contents=[
                ResourceContents(
                    uri=item.get("uri", ""),
                    mime_type=item.get("mimeType"),
                    text=item.get("text"),
                    blob=item.get("blob"),
                )
                for item in data.get("contents") or []
            ]
        )
