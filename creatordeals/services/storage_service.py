from creatordeals.config import settings
from creatordeals.storage.filestore import FileStore

# Singleton storage instance
_storage: FileStore | None = None


def get_storage() -> FileStore:
    """Get or create the global attachment store rooted at UPLOAD_STORE_PATH."""
    global _storage
    if _storage is None:
        _storage = FileStore(root_dir=settings.upload_store_path)
    return _storage


def set_storage(store: FileStore | None) -> None:
    """Swap the global store (tests point it at a temporary directory)."""
    global _storage
    _storage = store
