"""Chat session persistence scoped by device id.

Includes:
- ChatStore: protocol the HTTP layer depends on
- InMemoryChatStore: process-local storage (development, tests)
- FileChatStore: one JSON file (simple persistence)

A session is only visible to the device that created it; reads and
writes with another device id behave as if the session did not exist.
"""

from __future__ import annotations

import asyncio
import copy
import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Union, runtime_checkable

import aiofiles
import aiofiles.os

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class StoredMessage:
    """A persisted chat message."""

    role: str
    content: str
    tool_calls: Optional[List[Dict[str, Any]]] = None
    created_at: str = field(default_factory=_now)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "role": self.role,
            "content": self.content,
            "createdAt": self.created_at,
        }
        if self.tool_calls:
            data["toolCalls"] = self.tool_calls
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StoredMessage":
        return cls(
            role=data["role"],
            content=data.get("content", ""),
            tool_calls=data.get("toolCalls"),
            created_at=data.get("createdAt") or _now(),
        )


@dataclass
class ChatSession:
    """A chat session owned by one device."""

    id: str
    device_id: str
    title: str
    messages: List[StoredMessage] = field(default_factory=list)
    created_at: str = field(default_factory=_now)
    updated_at: str = field(default_factory=_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "deviceId": self.device_id,
            "title": self.title,
            "messages": [m.to_dict() for m in self.messages],
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChatSession":
        return cls(
            id=data["id"],
            device_id=data["deviceId"],
            title=data.get("title", ""),
            messages=[StoredMessage.from_dict(m) for m in data.get("messages") or []],
            created_at=data.get("createdAt") or _now(),
            updated_at=data.get("updatedAt") or data.get("createdAt") or _now(),
        )


@runtime_checkable
class ChatStore(Protocol):
    """Protocol for chat session storage."""

    async def create(
        self,
        device_id: str,
        title: str,
        messages: Optional[List[StoredMessage]] = None,
        session_id: Optional[str] = None,
    ) -> ChatSession:
        """Create a session; ``session_id`` is generated when omitted.

        Raises:
            ValueError: A session with ``session_id`` already exists.
        """
        ...

    async def list_sessions(self, device_id: str) -> List[ChatSession]:
        """Sessions of a device, newest first."""
        ...

    async def get(self, device_id: str, session_id: str) -> Optional[ChatSession]:
        ...

    async def update_messages(
        self,
        device_id: str,
        session_id: str,
        messages: List[StoredMessage],
    ) -> bool:
        """Replace the messages of a session. False if not found."""
        ...

    async def delete(self, device_id: str, session_id: str) -> bool:
        """Delete a session. False if not found."""
        ...


class InMemoryChatStore:
    """Chat store kept in memory; data is lost when the process exits."""

    def __init__(self) -> None:
        self._sessions: Dict[str, ChatSession] = {}

    def _owned(self, device_id: str, session_id: str) -> Optional[ChatSession]:
        session = self._sessions.get(session_id)
        if session is None or session.device_id != device_id:
            return None
        return session

    async def create(
        self,
        device_id: str,
        title: str,
        messages: Optional[List[StoredMessage]] = None,
        session_id: Optional[str] = None,
    ) -> ChatSession:
        session_id = session_id or str(uuid.uuid4())
        if session_id in self._sessions:
            raise ValueError(f"Session {session_id} already exists")
        session = ChatSession(
            id=session_id,
            device_id=device_id,
            title=title,
            messages=list(messages or []),
        )
        self._sessions[session_id] = session
        return copy.deepcopy(session)

    async def list_sessions(self, device_id: str) -> List[ChatSession]:
        sessions = [s for s in self._sessions.values() if s.device_id == device_id]
        sessions.sort(key=lambda s: s.created_at, reverse=True)
        return copy.deepcopy(sessions)

    async def get(self, device_id: str, session_id: str) -> Optional[ChatSession]:
        return copy.deepcopy(self._owned(device_id, session_id))

    async def update_messages(
        self,
        device_id: str,
        session_id: str,
        messages: List[StoredMessage],
    ) -> bool:
        session = self._owned(device_id, session_id)
        if session is None:
            return False
        session.messages = list(messages)
        session.updated_at = _now()
        return True

    async def delete(self, device_id: str, session_id: str) -> bool:
        if self._owned(device_id, session_id) is None:
            return False
        del self._sessions[session_id]
        return True

    async def clear(self) -> None:
        """Remove all sessions (testing)."""
        self._sessions.clear()


class FileChatStore:
    """Chat store backed by a single JSON file.

    Directory layout:
        base_path/
        └── chat_sessions.json  # session id -> session
    """

    def __init__(self, base_path: Union[str, Path]) -> None:
        self._base_path = Path(base_path)
        self._file = self._base_path / "chat_sessions.json"
        self._cache: Optional[Dict[str, Dict[str, Any]]] = None
        self._lock = asyncio.Lock()

    async def _ensure_directory(self) -> None:
        if not self._base_path.exists():
            await aiofiles.os.makedirs(str(self._base_path), exist_ok=True)

    async def _load(self) -> Dict[str, Dict[str, Any]]:
        if self._cache is not None:
            return self._cache

        if not self._file.exists():
            self._cache = {}
            return self._cache

        try:
            async with aiofiles.open(self._file, "r", encoding="utf-8") as f:
                content = await f.read()
            self._cache = json.loads(content) if content.strip() else {}
        except json.JSONDecodeError as e:
            backup = await self._set_aside()
            logger.error(f"Chat store {self._file} is corrupt ({e}); moved it to {backup}")
            self._cache = {}
        except OSError as e:
            logger.error(f"Could not read chat store {self._file}: {e}")
            self._cache = {}
        return self._cache

    async def _set_aside(self) -> Path:
        """Rename the store file so the next save cannot overwrite it."""
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
        backup = self._file.with_name(f"{self._file.name}.corrupt-{stamp}")
        await aiofiles.os.rename(str(self._file), str(backup))
        return backup

    async def _save(self) -> None:
        await self._ensure_directory()
        async with aiofiles.open(self._file, "w", encoding="utf-8") as f:
            await f.write(json.dumps(self._cache, indent=2, ensure_ascii=False))

    async def _owned(self, device_id: str, session_id: str) -> Optional[Dict[str, Any]]:
        data = (await self._load()).get(session_id)
        if data is None or data.get("deviceId") != device_id:
            return None
        return data

    async def create(
        self,
        device_id: str,
        title: str,
        messages: Optional[List[StoredMessage]] = None,
        session_id: Optional[str] = None,
    ) -> ChatSession:
        async with self._lock:
            cache = await self._load()
            session_id = session_id or str(uuid.uuid4())
            if session_id in cache:
                raise ValueError(f"Session {session_id} already exists")
            session = ChatSession(
                id=session_id,
                device_id=device_id,
                title=title,
                messages=list(messages or []),
            )
            cache[session_id] = session.to_dict()
            await self._save()
            return session

    async def list_sessions(self, device_id: str) -> List[ChatSession]:
        cache = await self._load()
        sessions = [
            ChatSession.from_dict(data)
            for data in cache.values()
            if data.get("deviceId") == device_id
        ]
        sessions.sort(key=lambda s: s.created_at, reverse=True)
        return sessions

    async def get(self, device_id: str, session_id: str) -> Optional[ChatSession]:
        data = await self._owned(device_id, session_id)
        return ChatSession.from_dict(data) if data is not None else None

    async def update_messages(
        self,
        device_id: str,
        session_id: str,
        messages: List[StoredMessage],
    ) -> bool:
        async with self._lock:
            data = await self._owned(device_id, session_id)
            if data is None:
                return False
            data["messages"] = [m.to_dict() for m in messages]
            data["updatedAt"] = _now()
            await self._save()
            return True

    async def delete(self, device_id: str, session_id: str) -> bool:
        async with self._lock:
            if await self._owned(device_id, session_id) is None:
                return False
            del self._cache[session_id]
            await self._save()
            return True
