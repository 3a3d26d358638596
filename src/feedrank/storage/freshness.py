"""
JSON-backed freshness store.

Holds one FreshnessEntry per feed URL. The orchestrator loads the whole
mapping once at the start of a pass and saves it once at the end.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Dict

from pydantic import ValidationError

from feedrank.errors import PersistenceError
from feedrank.models.entities import FreshnessEntry

logger = logging.getLogger(__name__)


class FreshnessStore:
    """
    Freshness metadata persisted as a single JSON document.

    Example:
        >>> store = FreshnessStore(Path("~/.feedrank/cache_info.json"))
        >>> entries = store.load()
        >>> entries["https://example.com/rss"].fetch_after
    """

    def __init__(self, path: Path):
        self.path = path

    def load(self) -> Dict[str, FreshnessEntry]:
        """
        Load all entries keyed by URL.

        A missing file yields an empty mapping. A corrupt file is logged and
        also treated as empty, so every feed becomes eligible for a fetch.
        """
        if not self.path.exists():
            return {}

        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (ValueError, OSError) as exc:
            logger.warning("Could not load cache info from %s: %s", self.path, exc)
            return {}

        if not isinstance(data, dict):
            logger.warning("Ignoring cache info in %s: expected an object", self.path)
            return {}

        entries: Dict[str, FreshnessEntry] = {}
        for url, raw in data.items():
            if not isinstance(raw, dict):
                continue
            try:
                entries[url] = FreshnessEntry.model_validate({**raw, "url": url})
            except ValidationError as exc:
                logger.warning("Skipping cache info for %s: %s", url, exc)
        return entries

    def save(self, entries: Dict[str, FreshnessEntry]) -> None:
        """
        Write all entries, replacing the previous document atomically.

        Raises:
            PersistenceError: If the file cannot be written
        """
        payload = {
            url: entry.model_dump(mode="json")
            for url, entry in sorted(entries.items())
        }
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self.path.parent, prefix=".cache_info.", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(payload, f, indent=2, ensure_ascii=False)
                os.replace(tmp_name, self.path)
            except BaseException:
                os.unlink(tmp_name)
                raise
        except OSError as exc:
            raise PersistenceError(f"failed to save cache info: {exc}") from exc
