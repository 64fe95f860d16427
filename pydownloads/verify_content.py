"""
Verify base64 file content stored in the database.

Every database-stored file is decoded and its length compared with the
size recorded in its row.

Usage:
  python -m pydownloads.verify_content --dry-run
  python -m pydownloads.verify_content --fix-size --max-size-mb 50

Notes:
  - Each file is decoded in full, so memory use peaks at the largest file
    checked. Use --max-size-mb to skip the big ones.
  - Files kept in the object-storage bucket are skipped.
"""

import argparse
import sys
from pathlib import Path

from .codec import decode
from .errors import CodecError, MIB
from .settings import load_settings, resolve_database_path
from .store import FileStore, connect


def verify_file(store, file_id, decode_chunk_size):
    """
    Decode one stored file.

    Returns (decoded_size, declared_size) and raises CodecError when the
    content cannot be decoded.
    """
    record = store.get_file(file_id)
    data = decode(record.content_base64, chunk_size=decode_chunk_size)
    return len(data), record.size_bytes


def build_parser():
    parser = argparse.ArgumentParser(description='Decode stored files and check their recorded sizes.')
    parser.add_argument('--dry-run', action='store_true', help='Report mismatches without changing rows')
    parser.add_argument('--fix-size', action='store_true', help='Rewrite the size column when it is wrong')
    parser.add_argument('--limit', type=int, default=0, help='Limit number of files to check')
    parser.add_argument('--max-size-mb', type=int, default=0, help='Skip files larger than this size (MB)')
    parser.add_argument('--category', type=str, default='', help='Only check files in this category')
    parser.add_argument('--db-path', type=str, default='', help='Override database path')
    parser.add_argument('--settings', type=str, default='', help='Path to settings.json')
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)

    settings = load_settings(args.settings or None)
    db_path = Path(args.db_path) if args.db_path else resolve_database_path(settings)

    if not db_path.exists():
        print(f'Database not found: {db_path}')
        return 1

    max_size_bytes = args.max_size_mb * MIB if args.max_size_mb else 0

    db = connect(db_path)
    store = FileStore(db)

    checked = 0
    fixed = 0
    skipped = 0
    failed = 0

    try:
        for info in store.list_files(args.category or None):
            if args.limit and checked >= args.limit:
                break

            if info.is_external:
                print(f"[skip] file_id={info.id} stored externally at {info.storage_path}")
                skipped += 1
                continue

            if max_size_bytes and info.size_bytes > max_size_bytes:
                print(f"[skip] file_id={info.id} exceeds max size")
                skipped += 1
                continue

            checked += 1
            try:
                actual, declared = verify_file(store, info.id, settings['decode_chunk_size'])
            except CodecError as exc:
                failed += 1
                print(f"[fail] file_id={info.id} kind={exc.kind} error={exc.detail}")
                continue

            if actual == declared:
                print(f"[ok] file_id={info.id} size={actual}")
                continue

            print(f"[mismatch] file_id={info.id} declared={declared} decoded={actual}")
            if args.fix_size and not args.dry_run:
                store.update_size(info.id, actual)
                fixed += 1
                print(f"[fixed] file_id={info.id} size={actual}")
    finally:
        db.close()

    print(f"Done. checked={checked} fixed={fixed} skipped={skipped} failed={failed}")
    return 2 if failed else 0


if __name__ == '__main__':
    sys.exit(main())
