from __future__ import annotations

import enum
import uuid


class BoletoImportError(Exception):
    """Base class for errors raised by the import pipeline."""


class UnsupportedFileError(BoletoImportError):
    def __init__(self, filename: str) -> None:
        super().__init__(f"Unsupported file format: {filename}")
        self.filename = filename


class EmptyFileError(BoletoImportError):
    def __init__(self, filename: str) -> None:
        super().__init__(f"File {filename} contains no data rows")
        self.filename = filename


class TooManyRowsError(BoletoImportError):
    def __init__(self, count: int, limit: int) -> None:
        super().__init__(f"File contains more than {limit} rows ({count})")
        self.count = count
        self.limit = limit


class RowValidationError(BoletoImportError):
    """A single spreadsheet line failed validation."""

    def __init__(self, row_number: int, errors: list[str]) -> None:
        super().__init__(f"Linha {row_number}: {', '.join(errors)}")
        self.row_number = row_number
        self.errors = errors


class FileValidationError(BoletoImportError):
    """One or more lines of an uploaded file failed validation."""

    def __init__(self, row_errors: list[RowValidationError]) -> None:
        self.row_errors = row_errors
        super().__init__("; ".join(str(e) for e in row_errors[:5]))

    @property
    def messages(self) -> list[str]:
        return [str(e) for e in self.row_errors]


class ImportNotFoundError(BoletoImportError):
    def __init__(self, import_id: uuid.UUID) -> None:
        super().__init__(f"Import {import_id} not found")
        self.import_id = import_id


class IssuerErrorKind(str, enum.Enum):
    RATE_LIMITED = "rate_limited"
    SERVER_ERROR = "server_error"
    CLIENT_ERROR = "client_error"
    NETWORK = "network"
    INVALID_RESPONSE = "invalid_response"


RETRYABLE_KINDS = {
    IssuerErrorKind.RATE_LIMITED,
    IssuerErrorKind.SERVER_ERROR,
    IssuerErrorKind.NETWORK,
    IssuerErrorKind.INVALID_RESPONSE,
}


class IssuerError(BoletoImportError):
    """Failure reported by the document issuer API.

    ``kind`` tags the failure; ``status`` is the HTTP status when a response
    was received and ``retry_after`` the server hint (seconds) on a 429.
    """

    def __init__(
        self,
        kind: IssuerErrorKind,
        message: str,
        status: int | None = None,
        retry_after: int | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.status = status
        self.retry_after = retry_after

    @classmethod
    def from_status(
        cls, status: int, message: str, retry_after: int | None = None
    ) -> IssuerError:
        if status == 429:
            kind = IssuerErrorKind.RATE_LIMITED
        elif 500 <= status < 600:
            kind = IssuerErrorKind.SERVER_ERROR
        else:
            kind = IssuerErrorKind.CLIENT_ERROR
        return cls(kind, message, status=status, retry_after=retry_after)

    @property
    def retryable(self) -> bool:
        return self.kind in RETRYABLE_KINDS

    @property
    def code(self) -> str:
        return str(self.status) if self.status is not None else "UNKNOWN"

    def __repr__(self) -> str:
        return f"IssuerError(kind={self.kind.value}, status={self.status}, message={self.message!r})"
