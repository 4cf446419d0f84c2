from __future__ import annotations

import io
from typing import Any

import pandas as pd

from boleto_importer.plugins import registry
from boleto_importer.plugins.base import FileParserPlugin


class CsvSheetParser(FileParserPlugin):
    name = "csv"
    supported_extensions = [".csv"]

    @staticmethod
    def _delimiter(file_content: bytes) -> str:
        header_line = file_content.split(b"\n", 1)[0]
        return ";" if header_line.count(b";") > header_line.count(b",") else ","

    def parse(self, file_content: bytes, filename: str) -> list[dict[str, Any]]:
        df = pd.read_csv(
            io.BytesIO(file_content),
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
            sep=self._delimiter(file_content),
            encoding="utf-8-sig",
        )

        # Header cells often carry stray spaces
        df.columns = [str(c).strip() for c in df.columns]
        df = df.apply(lambda col: col.str.strip())
        # Lines holding only separators survive skip_blank_lines
        df = df[(df != "").any(axis=1)]

        return df.to_dict(orient="records")


def register_plugin() -> None:
    registry.register(CsvSheetParser())
