from flask import current_app

from app.storage.base import StorageProvider
from app.storage.local import LocalStorageProvider

# Key for storing storage provider in Flask app extensions
_STORAGE_EXTENSION_KEY = 'storage_provider'


def get_storage():
    """
    Return the receipt storage provider (singleton per app).
    The provider is cached in current_app.extensions to avoid recreating it.
    """
    if _STORAGE_EXTENSION_KEY in current_app.extensions:
        return current_app.extensions[_STORAGE_EXTENSION_KEY]
    
    provider = current_app.config.get('STORAGE_PROVIDER', 'local').lower()
    if provider != 'local':
        current_app.logger.warning(f'Unknown storage provider "{provider}", falling back to local storage')
    storage_instance = LocalStorageProvider(current_app.config)
    
    # Cache the instance in app extensions (singleton)
    current_app.extensions[_STORAGE_EXTENSION_KEY] = storage_instance
    current_app.logger.debug('Storage provider cached in app extensions')
    
    return storage_instance


__all__ = ['StorageProvider', 'LocalStorageProvider', 'get_storage']
