"""Access to avatar and attachment files of the source installation."""

import logging
import os
from pathlib import Path
from typing import Optional

from ..errors import FileAccessError

logger = logging.getLogger(__name__)


class FileStorage:
    """Resolves relative file paths recorded in source rows below a base directory."""

    def __init__(self, base_path: Optional[str]):
        self.base_path = Path(base_path).resolve() if base_path else None

    def resolve(self, relative_path: str) -> str:
        """
        Resolve ``relative_path`` to a readable file.

        Raises:
            FileAccessError: if no base directory is configured, the path
                leaves the base directory, or the file is missing or unreadable
        """
        if self.base_path is None:
            raise FileAccessError("No file system path configured for this source")
        if not relative_path:
            raise FileAccessError("Empty file path")

        location = (self.base_path / relative_path.lstrip("/\\")).resolve()
        if location != self.base_path and self.base_path not in location.parents:
            raise FileAccessError(f"{relative_path} is outside {self.base_path}")
        if not location.is_file():
            raise FileAccessError(f"{location} does not exist")
        if not os.access(location, os.R_OK):
            raise FileAccessError(f"{location} is not readable")

        return str(location)
