"""
PyDownloads - File Download Portal
Serves categorized files whose content is stored as base64 text in SQLite
or in an external object-storage bucket.
"""

import logging
import mimetypes
import os
import secrets
import sqlite3
from pathlib import Path
from urllib.parse import quote

from flask import Blueprint, Flask, Response, current_app, g, jsonify, redirect, request
from werkzeug.middleware.proxy_fix import ProxyFix
from werkzeug.utils import secure_filename

from .codec import TOO_LARGE_HINT, decode, decoded_length, encode_stream
from .errors import CodecError, DecodeError, MIB, OversizeError
from .object_storage import ObjectStorage
from .settings import get_env_bool, load_settings, resolve_database_path
from .size_policy import check_size
from .store import FileStore, connect

api = Blueprint('api', __name__)

# Status codes for each codec error kind
ERROR_STATUS = {
    'oversize': 413,
    'decode': 500,
    'encode': 400,
}


def create_app(settings=None, database_path=None, object_storage=None):
    """Build the Flask app; storage collaborators may be passed in directly."""
    settings = settings or load_settings()

    app = Flask(__name__)
    app.secret_key = settings.get('secret_key') or secrets.token_hex(32)
    app.config['SETTINGS'] = settings
    app.config['DATABASE'] = str(database_path or resolve_database_path(settings))
    app.config['OBJECT_STORAGE'] = object_storage or ObjectStorage(
        settings['storage_public_url'], settings['storage_bucket']
    )
    # Leave room for the multipart envelope around an upload at the size limit
    app.config['MAX_CONTENT_LENGTH'] = settings['max_size'] + MIB

    # Trust proxy headers (e.g., X-Forwarded-Proto) for correct scheme detection
    if get_env_bool('TRUST_X_FORWARDED_PROTO', False):
        app.wsgi_app = ProxyFix(app.wsgi_app, x_proto=1)

    app.register_blueprint(api)
    app.teardown_appcontext(close_db)

    with app.app_context():
        init_db()

    return app


# ==================== Database Functions ====================
def get_db():
    """Get database connection."""
    if 'db' not in g:
        g.db = connect(current_app.config['DATABASE'])
    return g.db


def close_db(error):
    """Close database connection."""
    db = g.pop('db', None)
    if db is not None:
        db.close()


def get_store():
    return FileStore(get_db())


def get_object_storage():
    return current_app.config['OBJECT_STORAGE']


def get_settings():
    return current_app.config['SETTINGS']


def init_db():
    """Initialize the database with tables and default categories."""
    get_store().init_schema(get_settings()['default_categories'])


# ==================== Response Helpers ====================
def json_error(message, status, kind=None):
    body = {'error': message}
    if kind:
        body['kind'] = kind
    return jsonify(body), status


def content_disposition(file_name):
    """Attachment header, using RFC 5987 encoding for non-ASCII names."""
    try:
        file_name.encode('ascii')
        return f'attachment; filename="{file_name}"'
    except UnicodeEncodeError:
        return f"attachment; filename*=UTF-8''{quote(file_name)}"


def file_response(record, data):
    response = Response(data, mimetype=record.file_type or 'application/octet-stream')
    response.headers['Content-Disposition'] = content_disposition(record.file_name or 'file')
    response.headers['Content-Length'] = str(len(data))
    response.headers['Cache-Control'] = 'no-store'
    return response


def file_to_dict(store, record):
    data = record.to_dict()
    data['downloads'] = store.download_count(record.id)
    return data


def read_upload(file):
    """
    Size-check and encode an uploaded file.

    Returns (original_name, mime_type, size, base64_content).
    """
    settings = get_settings()
    original_name = secure_filename(file.filename)
    if not original_name:
        raise ValueError('Invalid file name')

    # Get file size by seeking to end
    file.seek(0, 2)
    file_size = file.tell()
    file.seek(0)

    try:
        check_size(file_size, warn_size=settings['warn_size'],
                   max_size=settings['max_size'], name=original_name)
        content = encode_stream(file.stream, chunk_size=settings['encode_chunk_size'],
                                max_size=settings['max_size'])
    except OversizeError as exc:
        raise OversizeError(exc.size, exc.limit, detail=(
            f'File is too large to upload ({exc.size / MIB:.1f} MB, '
            f'limit {exc.limit / MIB:.0f} MB). Use object storage for larger files.'
        )) from exc

    mime_type = file.mimetype or mimetypes.guess_type(original_name)[0]
    return original_name, mime_type, file_size, content


# ==================== Routes: Files ====================
@api.route('/api/files')
def list_files():
    """List files (without content), optionally filtered by category."""
    store = get_store()
    category = request.args.get('category', '').strip() or None
    files = store.list_files(category)
    return jsonify({'files': [file_to_dict(store, f) for f in files]})


@api.route('/api/files/<file_id>')
def get_file_info(file_id):
    store = get_store()
    record = store.get_file_info(file_id)
    if record is None:
        return json_error('File not found', 404)
    return jsonify(file_to_dict(store, record))


@api.route('/api/files', methods=['POST'])
def upload_file():
    """Upload a file into the database, or register one kept in the bucket."""
    store = get_store()

    category = request.form.get('category', '').strip()
    if not category:
        return json_error('Category is required', 400)
    if not store.category_exists(category):
        return json_error(f'Unknown category: {category}', 400)

    description = request.form.get('description', '')
    storage_path = request.form.get('storage_path', '').strip()
    file = request.files.get('file')

    if storage_path and file and file.filename:
        return json_error('Provide either a file or a storage path, not both', 400)

    if storage_path:
        file_name = secure_filename(request.form.get('file_name') or Path(storage_path).name)
        if not file_name:
            return json_error('Invalid file name', 400)
        file_type = request.form.get('file_type') or mimetypes.guess_type(file_name)[0]
        size = request.form.get('size', default=0, type=int)
        file_id = store.add_file(file_name, file_type, category, size,
                                 storage_path=storage_path, description=description)
        return jsonify({'success': True, 'id': file_id, 'name': file_name, 'size': size}), 201

    if not file or not file.filename:
        return json_error('No file provided', 400)

    try:
        original_name, mime_type, file_size, content = read_upload(file)
    except ValueError as exc:
        return json_error(str(exc), 400)

    file_id = store.add_file(original_name, mime_type, category, file_size,
                             content=content, description=description)
    current_app.logger.info('Uploaded %s as %s', original_name, file_id)

    return jsonify({'success': True, 'id': file_id, 'name': original_name, 'size': file_size}), 201


@api.route('/api/files/<file_id>', methods=['PUT'])
def update_file(file_id):
    """Update file metadata, optionally replacing its content."""
    store = get_store()
    if store.get_file_info(file_id) is None:
        return json_error('File not found', 404)

    category = request.form.get('category', '').strip() or None
    if category and not store.category_exists(category):
        return json_error(f'Unknown category: {category}', 400)

    fields = {
        'file_name': secure_filename(request.form.get('file_name', '')) or None,
        'file_type': request.form.get('file_type') or None,
        'description': request.form.get('description'),
        'category': category,
        'storage_path': request.form.get('storage_path') or None,
    }

    file = request.files.get('file')
    if file and file.filename:
        if fields['storage_path']:
            return json_error('Provide either a file or a storage path, not both', 400)
        try:
            _, mime_type, file_size, content = read_upload(file)
        except ValueError as exc:
            return json_error(str(exc), 400)
        fields['file_type'] = fields['file_type'] or mime_type
        fields['size'] = file_size
        fields['content'] = content
    elif fields['storage_path']:
        fields['size'] = request.form.get('size', type=int)

    updated = store.update_file(file_id, **fields)
    return jsonify({'success': updated})


@api.route('/api/files/<file_id>', methods=['DELETE'])
def delete_file(file_id):
    if not get_store().delete_file(file_id):
        return json_error('File not found', 404)
    return jsonify({'success': True})


# ==================== Routes: Download ====================
@api.route('/api/download/<file_id>')
def download_file(file_id):
    """
    Download a file.

    Bucket-hosted files are redirected to their public URL. Database files
    pass the size policy, are decoded and sent as an attachment.
    """
    store = get_store()
    settings = get_settings()

    info = store.get_file_info(file_id)
    if info is None:
        return json_error('File not found', 404)

    if info.is_external:
        try:
            url = get_object_storage().public_url(info.storage_path)
        except RuntimeError as exc:
            current_app.logger.error('Cannot redirect %s: %s', file_id, exc)
            return json_error('External storage is not available', 503)
        store.record_download(file_id)
        response = redirect(url, code=302)
        response.headers['Cache-Control'] = 'no-cache'
        return response

    # Declared size is checked before the content is even loaded
    declared_size = info.size_bytes or None
    check_size(declared_size, warn_size=settings['warn_size'],
               max_size=settings['max_size'], name=info.file_name)

    record = store.get_file(file_id)
    if record is None or record.content_base64 is None:
        return json_error('File content not found', 404)

    if declared_size is None:
        check_size(decoded_length(record.content_base64), warn_size=settings['warn_size'],
                   max_size=settings['max_size'], name=record.file_name)

    data = decode(record.content_base64, chunk_size=settings['decode_chunk_size'])
    if declared_size is not None and len(data) != declared_size:
        current_app.logger.warning('File %s decoded to %d bytes, metadata says %d',
                                   file_id, len(data), declared_size)

    store.record_download(file_id)
    current_app.logger.info('Serving %s (%d bytes)', record.file_name, len(data))
    return file_response(record, data)


# ==================== Routes: Categories & Stats ====================
@api.route('/api/categories')
def list_categories():
    return jsonify({'categories': get_store().list_categories()})


@api.route('/api/categories', methods=['POST'])
def create_category():
    name = request.form.get('name', '').strip()
    if not name:
        return json_error('Category name is required', 400)
    try:
        category_id = get_store().add_category(name, request.form.get('description', ''))
    except sqlite3.IntegrityError:
        return json_error(f'Category already exists: {name}', 409)
    return jsonify({'success': True, 'id': category_id, 'name': name}), 201


@api.route('/api/stats')
def stats():
    store = get_store()
    return jsonify({
        'files': store.files_count(),
        'categories': store.categories_count(),
        'downloads': store.total_downloads(),
    })


@api.route('/api/activity')
def recent_activity():
    """Most recent downloads for the dashboard feed."""
    limit = request.args.get('limit', default=3, type=int)
    if limit < 1:
        return json_error('limit must be positive', 400)
    limit = min(limit, 100)
    return jsonify({'downloads': get_store().recent_downloads(limit)})


# ==================== Security Headers ====================
@api.after_app_request
def add_security_headers(response):
    """Stop browsers from sniffing downloaded content into something executable."""
    response.headers['X-Content-Type-Options'] = 'nosniff'
    response.headers['X-Frame-Options'] = 'DENY'
    response.headers['Referrer-Policy'] = 'strict-origin-when-cross-origin'
    return response


# ==================== Error Handlers ====================
@api.app_errorhandler(CodecError)
def codec_error(e):
    status = ERROR_STATUS.get(e.kind, 500)
    body = e.to_dict()
    if isinstance(e, DecodeError):
        current_app.logger.error('Decode failed: %s', e.detail)
        body['hint'] = TOO_LARGE_HINT
    return jsonify(body), status


@api.app_errorhandler(404)
def not_found(e):
    return json_error('Not found', 404)


@api.app_errorhandler(413)
def file_too_large(e):
    limit = get_settings()['max_size']
    return json_error(f'File too large. Maximum size is {limit // MIB}MB.', 413, kind=OversizeError.kind)


@api.app_errorhandler(500)
def server_error(e):
    return json_error('Server error', 500)


# ==================== Main ====================
def main():
    """Main entry point."""
    logging.basicConfig(level=logging.INFO, format='%(asctime)s %(levelname)s [%(name)s] %(message)s')
    app = create_app()

    # Debug mode should only be enabled in development
    debug_mode = get_env_bool('FLASK_DEBUG', False)
    host = os.environ.get('HOST', '0.0.0.0')
    port = int(os.environ.get('PORT', 5000))

    print("Starting PyDownloads server...")
    print(f"Database: {app.config['DATABASE']}")
    if debug_mode:
        print("WARNING: Debug mode is enabled. Do not use in production!")
    app.run(host=host, port=port, debug=debug_mode)


if __name__ == '__main__':
    main()
