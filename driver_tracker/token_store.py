"""
Storage for the driver's access token
"""

import json
import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Optional

logger = logging.getLogger(__name__)


class TokenStore(ABC):
    """Opaque key-value store for credentials"""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    def set(self, key: str, value: str):
        ...

    @abstractmethod
    def delete(self, key: str):
        ...


class MemoryTokenStore(TokenStore):
    """Process-local store, used by tests and one-shot commands"""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._items = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set(self, key: str, value: str):
        self._items[key] = value

    def delete(self, key: str):
        self._items.pop(key, None)


class FileTokenStore(TokenStore):
    """JSON file readable only by the current user"""

    def __init__(self, path: str):
        self.path = Path(path).expanduser()

    def _load(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path) as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Ignoring unreadable credential file {self.path}: {str(e)}")
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self, items: Dict[str, str]):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, 'w') as f:
            json.dump(items, f)
        os.chmod(self.path, 0o600)

    def get(self, key: str) -> Optional[str]:
        value = self._load().get(key)
        return value if isinstance(value, str) and value else None

    def set(self, key: str, value: str):
        items = self._load()
        items[key] = value
        self._save(items)
        logger.debug(f"Stored {key} in {self.path}")

    def delete(self, key: str):
        items = self._load()
        if key in items:
            del items[key]
            self._save(items)
            logger.debug(f"Removed {key} from {self.path}")
