"""
Filesystem cache of raw feed bodies.

One blob per feed URL, named by the SHA-1 of the URL and overwritten
wholesale whenever the origin returns a new body.
"""

import hashlib
import os
import shutil
import tempfile
from pathlib import Path
from typing import BinaryIO, Optional

from feedrank.errors import PersistenceError


def cache_key(url: str) -> str:
    return hashlib.sha1(url.encode("utf-8")).hexdigest()


class BodyCache:
    """
    Directory of cached feed bodies keyed by URL.

    Writes go to a temporary file in the same directory and are moved into
    place, so a reader never observes a partially written body.
    """

    def __init__(self, directory: Path):
        self.directory = directory

    def path_for(self, url: str) -> Path:
        return self.directory / cache_key(url)

    def open(self, url: str) -> BinaryIO:
        """
        Open the cached body for reading.

        Raises:
            PersistenceError: If no body is cached for the URL
        """
        try:
            return open(self.path_for(url), "rb")
        except OSError as exc:
            raise PersistenceError(f"no cached body for {url}: {exc}") from exc

    def write(self, url: str, stream: BinaryIO) -> None:
        """
        Replace the cached body for a URL with the contents of a stream.

        Raises:
            PersistenceError: If the body cannot be written
        """
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.directory, suffix=".tmp")
            try:
                with os.fdopen(fd, "wb") as f:
                    shutil.copyfileobj(stream, f)
                os.replace(tmp_name, self.path_for(url))
            except BaseException:
                os.unlink(tmp_name)
                raise
        except OSError as exc:
            raise PersistenceError(f"failed to write feed cache for {url}: {exc}") from exc

    def size(self, url: str) -> Optional[int]:
        """Size of the cached body in bytes, or None if nothing is cached."""
        try:
            return self.path_for(url).stat().st_size
        except OSError:
            return None
