"""
Device-local key/value cache shadowing chat state.

Best effort only: the remote store stays authoritative and this may diverge
from it. Read failures return the default; write failures are logged.
"""

import json
import logging
import os
import re
from pathlib import Path
from typing import Any, Optional

from ..core.config import settings

logger = logging.getLogger(__name__)

_UNSAFE = re.compile(r'[^A-Za-z0-9_\-]')


def conversations_key(user_id: str) -> str:
    return f"conversations_{user_id}"


def messages_key(conversation_id: str) -> str:
    return f"messages_{conversation_id}"


class LocalCache:
    """One JSON file per key under `directory`"""

    def __init__(self, directory: Optional[str] = None):
        self.directory = Path(directory or settings.LOCAL_CACHE_DIR)

    def _file(self, key: str) -> Path:
        return self.directory / f"{_UNSAFE.sub('_', key)}.json"

    def get(self, key: str, default: Any = None) -> Any:
        path = self._file(key)
        try:
            with path.open('r', encoding='utf-8') as f:
                return json.load(f)
        except FileNotFoundError:
            return default
        except (OSError, ValueError) as e:
            logger.warning(f"[Cache] Unreadable entry {key}: {e}")
            return default

    def set(self, key: str, value: Any) -> bool:
        path = self._file(key)
        tmp = path.with_suffix('.tmp')
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            with tmp.open('w', encoding='utf-8') as f:
                json.dump(value, f, default=str)
            os.replace(tmp, path)
            return True
        except (OSError, TypeError, ValueError) as e:
            logger.warning(f"[Cache] Could not write {key}: {e}")
            return False
