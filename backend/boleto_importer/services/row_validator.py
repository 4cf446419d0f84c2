"""Validation and normalization of raw spreadsheet records.

Every function here is pure: a malformed record is an expected outcome and
is reported through :class:`RowValidationResult`, never raised.
"""

from __future__ import annotations

import math
import numbers
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

CNPJ_WEIGHTS_FIRST = [5, 4, 3, 2, 9, 8, 7, 6, 5, 4, 3, 2]
CNPJ_WEIGHTS_SECOND = [6, 5, 4, 3, 2, 9, 8, 7, 6, 5, 4, 3, 2]

# Longest value each text column can hold
MAX_NAME_LENGTH = 255
MAX_ADDRESS_LENGTH = 255
MAX_NUMBER_LENGTH = 50
MAX_DISTRICT_LENGTH = 255
MAX_PHONE_LENGTH = 50
MAX_EMAIL_LENGTH = 255

# Values below this are whole currency units, the rest are already cents.
MINOR_UNITS_THRESHOLD = 100

_STATE_RE = re.compile(r"^[A-Z]{2}$")
_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_BR_DATE_RE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")
_NON_DIGITS_RE = re.compile(r"\D")
_AMOUNT_STRIP_RE = re.compile(r"[^\d.,]")
_LEADING_FLOAT_RE = re.compile(r"^(\d+\.?\d*|\.\d+)")


@dataclass(frozen=True)
class NormalizedRow:
    row_number: int
    name: str
    document: str
    address: str
    number: str
    district: str
    state: str
    postal_code: str
    amount: int
    due_date: str
    phone: str = ""
    email: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "row_number": self.row_number,
            "name": self.name,
            "document": self.document,
            "address": self.address,
            "number": self.number,
            "district": self.district,
            "state": self.state,
            "postal_code": self.postal_code,
            "amount": self.amount,
            "due_date": self.due_date,
            "phone": self.phone,
            "email": self.email,
        }


@dataclass
class RowValidationResult:
    row_number: int
    row: NormalizedRow | None = None
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.row is not None and not self.errors

    @property
    def message(self) -> str:
        return f"Linha {self.row_number}: {', '.join(self.errors)}"


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    # pandas fills empty cells with NaN
    return isinstance(value, float) and math.isnan(value)


def _text(value: Any) -> str:
    if _is_missing(value):
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def _lookup(raw: Mapping[str, Any], *keys: str) -> Any:
    """Return the first non-empty value among ``keys``."""
    for key in keys:
        value = raw.get(key)
        if not _is_missing(value) and value != "":
            return value
    return None


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _to_minor_units(value: float) -> int:
    if value < MINOR_UNITS_THRESHOLD:
        return _round_half_up(value * 100)
    return _round_half_up(value)


def parse_amount(value: Any) -> int | None:
    """Normalize an amount to integer cents, or None when not numeric."""
    if isinstance(value, bool):
        return None
    if isinstance(value, numbers.Real):
        number = float(value)
        if math.isnan(number) or math.isinf(number):
            return None
        return _to_minor_units(number)

    if isinstance(value, str):
        cleaned = _AMOUNT_STRIP_RE.sub("", value)
        normalized = cleaned.replace(",", ".", 1)
        match = _LEADING_FLOAT_RE.match(normalized)
        if match is None:
            return None
        return _to_minor_units(float(match.group(1)))

    return None


def clean_cnpj(value: Any) -> str | None:
    if _is_missing(value) or value == "":
        return None
    cleaned = _NON_DIGITS_RE.sub("", _text(value))
    if len(cleaned) == 14 and is_valid_cnpj(cleaned):
        return cleaned
    return None


def _check_digit(digits: str, weights: list[int]) -> int:
    total = sum(int(d) * w for d, w in zip(digits, weights))
    remainder = total % 11
    return 0 if remainder < 2 else 11 - remainder


def is_valid_cnpj(cnpj: str) -> bool:
    if len(cnpj) != 14 or not cnpj.isdigit():
        return False
    if len(set(cnpj)) == 1:
        return False
    if _check_digit(cnpj[:12], CNPJ_WEIGHTS_FIRST) != int(cnpj[12]):
        return False
    return _check_digit(cnpj[:13], CNPJ_WEIGHTS_SECOND) == int(cnpj[13])


def clean_cep(value: Any) -> str | None:
    if _is_missing(value) or value == "":
        return None
    cleaned = _NON_DIGITS_RE.sub("", _text(value))
    return cleaned if len(cleaned) == 8 else None


def parse_due_date(value: Any) -> str | None:
    """Return the due date as ISO ``YYYY-MM-DD``, or None when unparseable."""
    if _is_missing(value) or value == "":
        return None
    # XLSX cells may already be parsed dates (pandas Timestamps included)
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()

    date_str = str(value).strip()
    if _ISO_DATE_RE.match(date_str):
        return date_str

    match = _BR_DATE_RE.match(date_str)
    if match:
        day, month, year = match.groups()
        return f"{year}-{month.zfill(2)}-{day.zfill(2)}"

    return None


def validate_row(raw: Mapping[str, Any], row_number: int) -> RowValidationResult:
    result = RowValidationResult(row_number=row_number)
    errors = result.errors

    name = _text(raw.get("nome"))
    if not name:
        errors.append("Nome é obrigatório")
    elif len(name) > MAX_NAME_LENGTH:
        errors.append(f"Nome excede {MAX_NAME_LENGTH} caracteres")

    document = clean_cnpj(_lookup(raw, "CNPJ", "cnpj"))
    if document is None:
        errors.append("CNPJ inválido")

    address = _text(raw.get("endereco"))
    if not address:
        errors.append("Endereço é obrigatório")
    elif len(address) > MAX_ADDRESS_LENGTH:
        errors.append(f"Endereço excede {MAX_ADDRESS_LENGTH} caracteres")

    number = _text(raw.get("numero"))
    if not number:
        errors.append("Número é obrigatório")
    elif len(number) > MAX_NUMBER_LENGTH:
        errors.append(f"Número excede {MAX_NUMBER_LENGTH} caracteres")

    district = _text(raw.get("bairro"))
    if not district:
        errors.append("Bairro é obrigatório")
    elif len(district) > MAX_DISTRICT_LENGTH:
        errors.append(f"Bairro excede {MAX_DISTRICT_LENGTH} caracteres")

    state = _text(raw.get("estado")).upper()
    if not _STATE_RE.match(state):
        errors.append("Estado deve ter 2 letras (UF)")

    postal_code = clean_cep(_lookup(raw, "CEP", "cep"))
    if postal_code is None:
        errors.append("CEP inválido")

    amount = parse_amount(raw.get("valor"))
    if amount is None:
        errors.append("Valor inválido")

    due_date = parse_due_date(raw.get("vencimento"))
    if due_date is None:
        errors.append("Data de vencimento inválida")

    phone = _text(raw.get("telefone"))
    if len(phone) > MAX_PHONE_LENGTH:
        errors.append(f"Telefone excede {MAX_PHONE_LENGTH} caracteres")

    email = _text(raw.get("email"))
    if len(email) > MAX_EMAIL_LENGTH:
        errors.append(f"Email excede {MAX_EMAIL_LENGTH} caracteres")

    if errors:
        return result

    result.row = NormalizedRow(
        row_number=row_number,
        name=name,
        document=document,
        address=address,
        number=number,
        district=district,
        state=state,
        postal_code=postal_code,
        amount=amount,
        due_date=due_date,
        phone=phone,
        email=email,
    )
    return result
