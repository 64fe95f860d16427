"""Public URLs for files kept in an external object-storage bucket."""

from urllib.parse import quote


class ObjectStorage:
    """Resolves bucket object paths to their public download URLs."""

    def __init__(self, base_url, bucket):
        self.base_url = (base_url or '').rstrip('/')
        self.bucket = bucket

    @property
    def configured(self):
        return bool(self.base_url and self.bucket)

    def public_url(self, storage_path):
        if not self.configured:
            raise RuntimeError('Object storage is not configured (set STORAGE_PUBLIC_URL)')
        path = quote(storage_path.lstrip('/'))
        return f'{self.base_url}/storage/v1/object/public/{quote(self.bucket)}/{path}'
