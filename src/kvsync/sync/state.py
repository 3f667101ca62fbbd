"""On-disk JSON persistence shared by the local store and mutation queue.

Each document lives in a single JSON file under the data directory
(``store.json``, ``queue.json``).

Key design choices:

* **Atomic writes** -- ``save()`` writes to a temp file then calls
  ``os.replace()`` so readers never see partial data, and a crash mid-write
  leaves the previous document intact.
* **Dict-based state** -- documents are plain dicts rather than Pydantic
  models so owners can mutate them under their own lock and persist once.
"""

from __future__ import annotations

import copy
import json
import os
import tempfile
from pathlib import Path
from typing import Any


class JsonStateFile:
    """Load and atomically save one JSON document.

    Args:
        path: Location of the JSON file.  Its parent directory is created
            on first save.
    """

    def __init__(self, path: Path) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def load(self, default: dict[str, Any]) -> dict[str, Any]:
        """Load the document from disk.

        Args:
            default: Returned (as a deep copy) when the file does not exist.

        Returns:
            The parsed document.

        Raises:
            OSError: If the file exists but cannot be read.
            ValueError: If the file is not valid JSON or not an object.
        """
        if not self._path.exists():
            return copy.deepcopy(default)
        with open(self._path, encoding="utf-8") as fh:
            data = json.load(fh)
        if not isinstance(data, dict):
            raise ValueError(
                f"{self._path} does not contain a JSON object"
            )
        return data

    def save(self, data: dict[str, Any]) -> None:
        """Persist *data* atomically.

        Writes to a temporary file in the same directory then replaces the
        target.  Creates the parent directory if it does not exist.
        """
        directory = self._path.parent
        directory.mkdir(parents=True, exist_ok=True)

        fd, tmp_path = tempfile.mkstemp(dir=str(directory), suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh, indent=2)
            os.replace(tmp_path, self._path)
        except BaseException:
            # Clean up temp file on any failure.
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise
