import hashlib
from dataclasses import dataclass
from pathlib import Path, PurePath


@dataclass(frozen=True)
class StoredFile:
    key: str
    size: int


class FileStore:
    """Content-addressed storage for chat attachments and deliverables.

    Keys are ``<sha256 hex><extension>``. Files are sharded like:
        root/ab/cd/abcdef1234567890....png

    Identical uploads share one file on disk.
    """

    def __init__(self, root_dir: str, depth: int = 2, width: int = 2):
        self.root = Path(root_dir)
        self.depth = depth
        self.width = width
        self.root.mkdir(parents=True, exist_ok=True)

    def put(self, content: bytes, filename: str = "") -> StoredFile:
        """Store content and return its key and size."""
        key = hashlib.sha256(content).hexdigest() + self._extension(filename)
        path = self._key_to_path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        if not path.exists():
            path.write_bytes(content)
        return StoredFile(key=key, size=len(content))

    def get(self, key: str) -> bytes | None:
        """Return stored bytes, or None if the key is unknown or malformed."""
        path = self._safe_path(key)
        if path is not None and path.is_file():
            return path.read_bytes()
        return None

    def exists(self, key: str) -> bool:
        path = self._safe_path(key)
        return bool(path is not None and path.is_file())

    def delete(self, key: str) -> bool:
        path = self._safe_path(key)
        if path is not None and path.is_file():
            path.unlink()
            return True
        return False

    @staticmethod
    def _extension(filename: str) -> str:
        suffix = PurePath(filename or "").suffix.lower()
        if suffix and suffix[1:].isalnum() and len(suffix) <= 6:
            return suffix
        return ""

    def _key_to_path(self, key: str) -> Path:
        parts = [key[i * self.width : (i + 1) * self.width] for i in range(self.depth)]
        return self.root / Path(*parts) / key

    def _safe_path(self, key: str) -> Path | None:
        """Validate the key shape and ensure the path stays under the store root."""
        hex_part, _, ext = (key or "").partition(".")
        if len(hex_part) != 64 or not all(c in "0123456789abcdef" for c in hex_part):
            return None
        if ext and not ext.isalnum():
            return None
        candidate = self._key_to_path(key)
        try:
            root_resolved = self.root.resolve()
            resolved = candidate.resolve()
        except OSError:
            return None
        if root_resolved in resolved.parents:
            return resolved
        return None
