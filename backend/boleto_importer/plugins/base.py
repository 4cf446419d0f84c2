from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class FileParserPlugin(ABC):
    name: str = ""
    supported_extensions: list[str] = []

    @abstractmethod
    def parse(self, file_content: bytes, filename: str) -> list[dict[str, Any]]:
        """Parse file content and return one raw record per spreadsheet line."""

    def detect(self, file_content: bytes, filename: str) -> bool:
        """Return True if this parser can handle the file."""
        return filename.lower().endswith(tuple(self.supported_extensions))
