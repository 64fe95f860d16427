"""Settings loaded from settings.json, with environment overrides."""

import json
import os
from pathlib import Path

from dotenv import load_dotenv

from .codec import DECODE_CHUNK_SIZE, ENCODE_CHUNK_SIZE
from .size_policy import MAX_SIZE, WARN_SIZE

BASE_DIR = Path(__file__).parent.absolute()
SETTINGS_FILE = BASE_DIR / 'settings.json'

DEFAULT_SETTINGS = {
    'app_name': 'PyDownloads',
    'database_path': 'downloads.db',
    'encode_chunk_size': ENCODE_CHUNK_SIZE,
    'decode_chunk_size': DECODE_CHUNK_SIZE,
    'warn_size': WARN_SIZE,
    'max_size': MAX_SIZE,
    'storage_public_url': '',
    'storage_bucket': 'wolf-external',
    'default_categories': ['scripts', 'tools', 'templates'],
    # Random per process when unset
    'secret_key': None,
}

# Environment variable -> settings key
ENV_OVERRIDES = {
    'DATABASE_PATH': 'database_path',
    'STORAGE_PUBLIC_URL': 'storage_public_url',
    'STORAGE_BUCKET': 'storage_bucket',
    'SECRET_KEY': 'secret_key',
}

INT_KEYS = ('encode_chunk_size', 'decode_chunk_size', 'warn_size', 'max_size')


def get_env_bool(name, default=False):
    value = os.environ.get(name)
    if value is None:
        return default
    return str(value).strip().lower() in {'1', 'true', 'yes', 'on'}


def load_settings(settings_file=None):
    """Load settings from a JSON file, merged over the defaults."""
    load_dotenv()

    if settings_file is None:
        settings_file = os.environ.get('PYDOWNLOADS_SETTINGS') or SETTINGS_FILE
    settings_file = Path(settings_file)

    settings = dict(DEFAULT_SETTINGS)
    try:
        if settings_file.exists():
            with open(settings_file, 'r') as f:
                settings.update(json.load(f))
    except (json.JSONDecodeError, IOError) as e:
        print(f'Warning: Could not load {settings_file.name}: {e}')

    for env_name, key in ENV_OVERRIDES.items():
        value = os.environ.get(env_name, '').strip()
        if value:
            settings[key] = value

    for key in INT_KEYS:
        try:
            settings[key] = int(settings[key])
        except (TypeError, ValueError) as e:
            print(f'Warning: Invalid value for {key}, using default: {e}')
            settings[key] = DEFAULT_SETTINGS[key]

    return settings


def resolve_database_path(settings):
    """Relative database paths live next to the package."""
    path = Path(settings['database_path'])
    if not path.is_absolute():
        path = BASE_DIR / path
    return path
