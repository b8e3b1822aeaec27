# tracesdk/files/record.py
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping, Optional

from tracesdk.core.types import FileInfo

_REQUIRED_KEYS = ("digest", "name", "mimetype", "size")


@dataclass(frozen=True)
class FileRecord:
    """
    Reference to a file stored in the media service. It replaces the file
    wrapper inside link data once the file has been uploaded.
    """
    digest: str
    name: str
    mimetype: str
    size: int
    key: Optional[str] = None
    created_at: Optional[datetime] = None

    @property
    def id(self) -> str:
        return self.digest

    @classmethod
    def from_media(cls, media: Mapping[str, Any], info: FileInfo) -> "FileRecord":
        """Combine the media service record ({digest, name}) with local file info."""
        return cls(
            digest=media["digest"],
            name=media["name"],
            mimetype=info.mimetype,
            size=info.size,
            key=info.key,
            created_at=info.created_at,
        )

    @classmethod
    def from_object(cls, obj: Any) -> "FileRecord":
        if isinstance(obj, FileRecord):
            return obj
        created_at = obj.get("createdAt")
        if isinstance(created_at, str):
            created_at = datetime.fromisoformat(created_at.replace("Z", "+00:00"))
        return cls(
            digest=obj["digest"],
            name=obj["name"],
            mimetype=obj["mimetype"],
            size=obj["size"],
            key=obj.get("key"),
            created_at=created_at,
        )

    @staticmethod
    def is_file_record(obj: Any) -> bool:
        if isinstance(obj, FileRecord):
            return True
        return isinstance(obj, Mapping) and all(obj.get(k) is not None for k in _REQUIRED_KEYS)

    def to_dict(self) -> dict:
        d = {
            "digest": self.digest,
            "name": self.name,
            "mimetype": self.mimetype,
            "size": self.size,
        }
        if self.key is not None:
            d["key"] = self.key
        if self.created_at is not None:
            d["createdAt"] = self.created_at.isoformat()
        return d
