"""Typed rows for the files table."""

from dataclasses import dataclass, replace
from typing import Optional


def normalize_storage_path(value):
    """Blank storage paths mean "not stored externally"."""
    if value is None:
        return None
    value = str(value).strip()
    return value or None


@dataclass(frozen=True)
class FileRecord:
    """
    A stored file.

    Content lives either inline as base64 text (``content_base64``) or in an
    object-storage bucket (``storage_path``), never both and never neither.
    Listing queries leave the content column out; ``has_content`` still
    records that it exists.
    """

    id: str
    file_name: str
    file_type: str
    category: str
    size_bytes: int
    description: str = ''
    content_base64: Optional[str] = None
    storage_path: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    has_content: bool = False

    def __post_init__(self):
        object.__setattr__(self, 'storage_path', normalize_storage_path(self.storage_path))
        if self.content_base64 is not None:
            object.__setattr__(self, 'has_content', True)

        if self.has_content and self.storage_path:
            raise ValueError(f'File {self.id} has both inline content and a storage path')
        if not self.has_content and not self.storage_path:
            raise ValueError(f'File {self.id} has neither inline content nor a storage path')

    @property
    def is_external(self):
        return self.storage_path is not None

    @classmethod
    def from_row(cls, row):
        """Build a record from a sqlite3.Row (with or without the content column)."""
        keys = row.keys()
        content = row['content'] if 'content' in keys else None
        has_content = bool(row['has_content']) if 'has_content' in keys else content is not None
        return cls(
            id=row['id'],
            file_name=row['file_name'],
            file_type=row['file_type'] or 'application/octet-stream',
            category=row['category'],
            size_bytes=int(row['size'] or 0),
            description=row['description'] or '',
            content_base64=content,
            storage_path=row['storage_path'],
            created_at=row['created_at'],
            updated_at=row['updated_at'],
            has_content=has_content,
        )

    def without_content(self):
        return replace(self, content_base64=None)

    def to_dict(self):
        return {
            'id': self.id,
            'file_name': self.file_name,
            'file_type': self.file_type,
            'description': self.description,
            'category': self.category,
            'size': self.size_bytes,
            'storage': 'external' if self.is_external else 'database',
            'created_at': self.created_at,
            'updated_at': self.updated_at,
        }
