import os
from flask import current_app

from app.storage.base import StorageProvider


class LocalStorageProvider(StorageProvider):
    """Store receipt artifacts on the local filesystem (RECEIPTS_FOLDER)."""

    def __init__(self, config):
        self.base_folder = config.get('RECEIPTS_FOLDER', 'storage/receipts')
        os.makedirs(self.base_folder, exist_ok=True)

    def _path(self, key: str) -> str:
        rel_path = os.path.normpath(key.lstrip('/'))
        if rel_path.startswith('..'):
            raise ValueError(f'Invalid storage key: {key}')
        return os.path.join(self.base_folder, rel_path)

    def save(self, key: str, content: bytes) -> str:
        """
        Write content to local storage.
        
        A file already under key is replaced: it can only come from a unit of
        work that rolled back, so its number was never handed out.
        
        Returns:
            The key where the file was stored
        """
        dest_path = self._path(key)
        os.makedirs(os.path.dirname(dest_path), exist_ok=True)
        tmp_path = f'{dest_path}.tmp'
        with open(tmp_path, 'wb') as f:
            f.write(content)
        os.replace(tmp_path, dest_path)
        current_app.logger.info(f'LocalStorage: saved {key} ({len(content)} bytes)')
        return key

    def open(self, key: str) -> bytes:
        with open(self._path(key), 'rb') as f:
            return f.read()

    def exists(self, key: str) -> bool:
        return os.path.exists(self._path(key))
