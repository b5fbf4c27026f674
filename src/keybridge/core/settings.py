"""Browser integration settings.

Settings live in a JSON file inside the data directory and can be overridden
through environment variables:

  KEYBRIDGE_MATCH_URL_SCHEME   "1"/"0", only offer credentials whose scheme matches
  KEYBRIDGE_BEST_MATCH_ONLY    "1"/"0", only return the top scoring credentials
  KEYBRIDGE_TRUSTED_CLIENTS    comma separated extension client ids
"""
from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

DEFAULT_DATA_DIR = os.path.expanduser("~/.keybridge")
SETTINGS_FILE = "browser.json"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def _env_flag(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    logger.warning(f"Ignoring {name}={raw!r}: expected a boolean")
    return default


@dataclass
class BrowserSettings:
    """Feature toggles consumed by the matcher and the request dispatcher."""
    match_url_scheme: bool = True
    best_match_only: bool = False
    trusted_clients: List[str] = field(default_factory=list)

    def is_trusted(self, client_id: Optional[str]) -> bool:
        """An empty trust list accepts every client."""
        if not self.trusted_clients:
            return True
        return client_id in self.trusted_clients

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'BrowserSettings':
        return cls(
            match_url_scheme=bool(data.get('match_url_scheme', True)),
            best_match_only=bool(data.get('best_match_only', False)),
            trusted_clients=[str(c) for c in data.get('trusted_clients') or []],
        )

    @classmethod
    def load(cls, path: Optional[Path] = None, use_env: bool = True) -> 'BrowserSettings':
        """Load settings from ``path`` (default data dir), then apply env overrides."""
        path = Path(path) if path else Path(DEFAULT_DATA_DIR) / SETTINGS_FILE
        settings = cls()
        if path.exists():
            try:
                settings = cls.from_dict(json.loads(path.read_text(encoding='utf-8')))
            except (OSError, ValueError) as e:
                logger.warning(f"Could not read settings from {path}: {e}; using defaults")
        if use_env:
            settings.apply_env()
        return settings

    def apply_env(self) -> None:
        self.match_url_scheme = _env_flag("KEYBRIDGE_MATCH_URL_SCHEME", self.match_url_scheme)
        self.best_match_only = _env_flag("KEYBRIDGE_BEST_MATCH_ONLY", self.best_match_only)
        clients = os.environ.get("KEYBRIDGE_TRUSTED_CLIENTS")
        if clients is not None:
            self.trusted_clients = [c.strip() for c in clients.split(",") if c.strip()]

    def save(self, path: Optional[Path] = None) -> Path:
        path = Path(path) if path else Path(DEFAULT_DATA_DIR) / SETTINGS_FILE
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(self.to_dict(), indent=2), encoding='utf-8')
        return path
