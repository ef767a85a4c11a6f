"""
Backing store
Serves the authoritative contents of every page from a flat binary file
"""

import logging
from typing import BinaryIO, Optional

import numpy as np

logger = logging.getLogger(__name__)

DEFAULT_BACKING_STORE = "BACKING_STORE.bin"


class BackingStoreError(OSError):
    """Backing store could not be opened or does not hold the requested page"""


class BackingStore:
    """Seekable source of fixed-size pages laid out contiguously in a file"""

    def __init__(self, path: str = DEFAULT_BACKING_STORE, page_size: int = 256,
                 num_pages: int = 256):
        self.path = path
        self.page_size = page_size
        self.num_pages = num_pages
        self._file: Optional[BinaryIO] = None
        try:
            self._file = open(path, "rb")
        except OSError as e:
            raise BackingStoreError(f"Error opening {path}: {e.strerror or e}") from e
        logger.debug("Opened backing store %s", path)

    @property
    def closed(self) -> bool:
        return self._file is None

    def read_page(self, page_num: int) -> np.ndarray:
        """Read one page and return it as PAGE_SIZE signed bytes"""
        if not 0 <= page_num < self.num_pages:
            raise BackingStoreError(
                f"Page {page_num} out of range (0 .. {self.num_pages - 1})"
            )
        if self._file is None:
            raise BackingStoreError(f"Backing store {self.path} is closed")

        self._file.seek(page_num * self.page_size)
        data = self._file.read(self.page_size)
        if len(data) < self.page_size:
            # The address stream referenced a page past the end of the file
            raise BackingStoreError(
                f"Short read from {self.path} for page {page_num}: "
                f"got {len(data)} of {self.page_size} bytes"
            )
        return np.frombuffer(data, dtype=np.int8)

    def close(self):
        if self._file is not None:
            self._file.close()
            self._file = None
            logger.debug("Closed backing store %s", self.path)

    def __enter__(self) -> "BackingStore":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def __repr__(self) -> str:
        state = "closed" if self.closed else "open"
        return f"BackingStore({self.path!r}, {state})"
