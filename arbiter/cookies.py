from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Union

logger = logging.getLogger(__name__)


class CookieStore:
    """JSON file of browser cookies, applied to every new browser context.

    The file is exported from a logged-in browser outside this tool; it is
    only read here."""

    def __init__(self, path: Union[str, Path]) -> None:
        self._path = Path(path).expanduser()

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> List[Dict[str, Any]]:
        """Return the stored cookies; an unreadable file counts as none."""
        if not self._path.exists():
            logger.info("No cookie file at %s", self._path)
            return []
        try:
            with open(self._path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as exc:
            logger.warning("Failed to load cookies from %s: %s", self._path, exc)
            return []
        if not isinstance(data, list):
            logger.warning("Cookie file %s does not hold a list", self._path)
            return []
        return [c for c in data if isinstance(c, dict) and c.get("name") and "value" in c]

    async def apply(self, context: Any) -> int:
        """Add the stored cookies to a browser context. Returns how many."""
        cookies = self.load()
        if cookies:
            logger.info("Loading %d cookies", len(cookies))
            await context.add_cookies(cookies)
        return len(cookies)
