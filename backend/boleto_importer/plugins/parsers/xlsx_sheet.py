from __future__ import annotations

import io
import math
import numbers
from typing import Any

import pandas as pd

from boleto_importer.plugins import registry
from boleto_importer.plugins.base import FileParserPlugin

# Digit columns Excel tends to store as numbers, dropping leading zeros
ZERO_PADDED_COLUMNS = {"CNPJ": 14, "cnpj": 14, "CEP": 8, "cep": 8}


def _restore_digits(value: Any, width: int) -> Any:
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        return value
    number = float(value)
    if math.isnan(number) or not number.is_integer():
        return value
    return str(int(number)).zfill(width)


class XlsxSheetParser(FileParserPlugin):
    """Reads the first worksheet of an Excel workbook."""

    name = "xlsx"
    supported_extensions = [".xlsx"]

    def parse(self, file_content: bytes, filename: str) -> list[dict[str, Any]]:
        df = pd.read_excel(io.BytesIO(file_content), sheet_name=0)
        df.columns = [str(c).strip() for c in df.columns]
        df = df.dropna(how="all")

        records = df.to_dict(orient="records")
        for record in records:
            for column, width in ZERO_PADDED_COLUMNS.items():
                if column in record:
                    record[column] = _restore_digits(record[column], width)
        return records


def register_plugin() -> None:
    registry.register(XlsxSheetParser())
