"""
SQLite persistence for files, categories and download tracking.

FileStore wraps a connection handed to it by the caller; it never opens
one itself.
"""

import logging
import sqlite3
import uuid
from datetime import datetime, timezone

from .models import FileRecord, normalize_storage_path

logger = logging.getLogger(__name__)

SCHEMA = '''
    -- Categories table
    CREATE TABLE IF NOT EXISTS categories (
        id TEXT PRIMARY KEY,
        name TEXT UNIQUE NOT NULL,
        description TEXT DEFAULT '',
        created_at TEXT NOT NULL
    );

    -- Files table: content is base64 text, or the file lives in a bucket
    CREATE TABLE IF NOT EXISTS files (
        id TEXT PRIMARY KEY,
        file_name TEXT NOT NULL,
        file_type TEXT,
        description TEXT DEFAULT '',
        category TEXT NOT NULL,
        size INTEGER NOT NULL DEFAULT 0,
        content TEXT,
        storage_path TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        CHECK ((content IS NULL) <> (storage_path IS NULL))
    );

    -- Download tracking
    CREATE TABLE IF NOT EXISTS downloads (
        id TEXT PRIMARY KEY,
        file_id TEXT NOT NULL,
        downloaded_at TEXT NOT NULL,
        FOREIGN KEY (file_id) REFERENCES files(id) ON DELETE CASCADE
    );

    CREATE INDEX IF NOT EXISTS idx_files_category ON files(category);
    CREATE INDEX IF NOT EXISTS idx_downloads_file ON downloads(file_id);
'''

INFO_COLUMNS = '''
    id, file_name, file_type, description, category, size, storage_path,
    content IS NOT NULL AS has_content, created_at, updated_at
'''


def now_iso():
    return datetime.now(timezone.utc).isoformat(timespec='seconds')


def connect(database_path):
    """Open a connection configured the way FileStore expects."""
    db = sqlite3.connect(database_path)
    db.row_factory = sqlite3.Row
    db.execute('PRAGMA foreign_keys = ON')
    return db


class FileStore:
    def __init__(self, db):
        self.db = db

    # ==================== Schema ====================
    def init_schema(self, default_categories=()):
        """Create tables and seed the default categories."""
        self.db.executescript(SCHEMA)
        self.ensure_schema()

        for name in default_categories:
            self.db.execute(
                'INSERT OR IGNORE INTO categories (id, name, created_at) VALUES (?, ?, ?)',
                (str(uuid.uuid4()), name, now_iso())
            )
        self.db.commit()

    def ensure_schema(self):
        """Apply lightweight schema migrations."""
        file_columns = {row['name'] for row in self.db.execute('PRAGMA table_info(files)').fetchall()}
        if 'storage_path' not in file_columns:
            self.db.execute('ALTER TABLE files ADD COLUMN storage_path TEXT')
        if 'updated_at' not in file_columns:
            self.db.execute('ALTER TABLE files ADD COLUMN updated_at TEXT')
            self.db.execute('UPDATE files SET updated_at = created_at WHERE updated_at IS NULL')
        self.db.commit()

    # ==================== Files ====================
    def add_file(self, file_name, file_type, category, size, content=None,
                 storage_path=None, description='', file_id=None):
        """Insert a file row and return its id."""
        timestamp = now_iso()
        record = FileRecord(
            id=file_id or str(uuid.uuid4()),
            file_name=file_name,
            file_type=file_type or 'application/octet-stream',
            category=category,
            size_bytes=int(size),
            description=description or '',
            content_base64=content,
            storage_path=storage_path,
            created_at=timestamp,
            updated_at=timestamp,
        )

        self.db.execute('''
            INSERT INTO files (id, file_name, file_type, description, category, size,
                               content, storage_path, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        ''', (record.id, record.file_name, record.file_type, record.description,
              record.category, record.size_bytes, record.content_base64,
              record.storage_path, record.created_at, record.updated_at))
        self.db.commit()

        logger.info('Stored file %s (%s, %d bytes, %s)', record.id, record.file_name,
                    record.size_bytes, 'external' if record.is_external else 'database')
        return record.id

    def get_file(self, file_id):
        """Fetch a file including its base64 content."""
        row = self.db.execute('SELECT * FROM files WHERE id = ?', (file_id,)).fetchone()
        return FileRecord.from_row(row) if row else None

    def get_file_info(self, file_id):
        """Fetch a file without loading its content."""
        row = self.db.execute(f'SELECT {INFO_COLUMNS} FROM files WHERE id = ?', (file_id,)).fetchone()
        return FileRecord.from_row(row) if row else None

    def list_files(self, category=None):
        sql = f'SELECT {INFO_COLUMNS} FROM files'
        args = []
        if category:
            sql += ' WHERE category = ?'
            args.append(category)
        sql += ' ORDER BY created_at DESC, file_name'
        return [FileRecord.from_row(row) for row in self.db.execute(sql, args).fetchall()]

    def update_file(self, file_id, file_name=None, file_type=None, description=None,
                    category=None, size=None, content=None, storage_path=None):
        """
        Update metadata and optionally move the content.

        New ``content`` replaces any storage path; a new ``storage_path``
        drops the inline content. Returns False when the file does not exist.
        """
        existing = self.get_file_info(file_id)
        if existing is None:
            return False

        storage_path = normalize_storage_path(storage_path)
        if content is not None and storage_path is not None:
            raise ValueError('Provide either content or a storage path, not both')

        assignments = {
            'file_name': file_name or existing.file_name,
            'file_type': file_type or existing.file_type,
            'description': existing.description if description is None else description,
            'category': category or existing.category,
            'updated_at': now_iso(),
        }
        if size is not None:
            assignments['size'] = int(size)
        if content is not None:
            assignments['content'] = content
            assignments['storage_path'] = None
        elif storage_path is not None:
            assignments['content'] = None
            assignments['storage_path'] = storage_path

        columns = ', '.join(f'{name} = ?' for name in assignments)
        cursor = self.db.execute(
            f'UPDATE files SET {columns} WHERE id = ?',
            (*assignments.values(), file_id)
        )
        self.db.commit()
        return cursor.rowcount > 0

    def update_size(self, file_id, size):
        self.db.execute('UPDATE files SET size = ?, updated_at = ? WHERE id = ?',
                        (int(size), now_iso(), file_id))
        self.db.commit()

    def delete_file(self, file_id):
        """Delete a file and its download records. Returns False if missing."""
        self.db.execute('DELETE FROM downloads WHERE file_id = ?', (file_id,))
        cursor = self.db.execute('DELETE FROM files WHERE id = ?', (file_id,))
        self.db.commit()
        return cursor.rowcount > 0

    def files_count(self):
        return self.db.execute('SELECT COUNT(*) AS count FROM files').fetchone()['count']

    # ==================== Downloads ====================
    def record_download(self, file_id):
        download_id = str(uuid.uuid4())
        self.db.execute('INSERT INTO downloads (id, file_id, downloaded_at) VALUES (?, ?, ?)',
                        (download_id, file_id, now_iso()))
        self.db.commit()
        return download_id

    def download_count(self, file_id):
        return self.db.execute('SELECT COUNT(*) AS count FROM downloads WHERE file_id = ?',
                               (file_id,)).fetchone()['count']

    def total_downloads(self):
        return self.db.execute('SELECT COUNT(*) AS count FROM downloads').fetchone()['count']

    def recent_downloads(self, limit=3):
        """Latest downloads, newest first, with the name of the file."""
        rows = self.db.execute('''
            SELECT d.id, d.downloaded_at, f.id AS file_id, f.file_name
            FROM downloads d
            JOIN files f ON d.file_id = f.id
            ORDER BY d.downloaded_at DESC, d.rowid DESC
            LIMIT ?
        ''', (limit,)).fetchall()
        return [dict(row) for row in rows]

    # ==================== Categories ====================
    def list_categories(self):
        rows = self.db.execute('SELECT id, name, description FROM categories ORDER BY name').fetchall()
        return [dict(row) for row in rows]

    def category_exists(self, name):
        return self.db.execute('SELECT 1 FROM categories WHERE name = ?', (name,)).fetchone() is not None

    def add_category(self, name, description=''):
        """Create a category; raises sqlite3.IntegrityError if the name is taken."""
        category_id = str(uuid.uuid4())
        self.db.execute('INSERT INTO categories (id, name, description, created_at) VALUES (?, ?, ?, ?)',
                        (category_id, name, description or '', now_iso()))
        self.db.commit()
        return category_id

    def categories_count(self):
        return self.db.execute('SELECT COUNT(*) AS count FROM categories').fetchone()['count']
