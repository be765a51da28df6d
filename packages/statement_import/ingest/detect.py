"""Format and encoding detection.

- :func:`kind_from_filename` maps a file extension to a :class:`DocumentKind`.
- :func:`decode_text` tries a prioritized list of encodings and accepts the first
  decoding that contains an expected anchor (provider name or first header cell).
- :func:`open_pdf` opens a pdfplumber session, translating a wrong or missing
  password into :class:`AuthError`.
"""

from __future__ import annotations

import io
from collections.abc import Iterator, Sequence
from contextlib import contextmanager

import pdfplumber
from pdfminer.pdfdocument import PDFPasswordIncorrect
from pdfminer.psparser import PSException
from pdfplumber.utils.exceptions import PdfminerException

from ..errors import AuthError, DecodeError, HeaderNotFoundError
from ..logging_setup import get_logger
from ..models import DocumentKind

logger = get_logger(__name__)

_EXTENSIONS: dict[str, DocumentKind] = {
    ".csv": DocumentKind.CSV,
    ".txt": DocumentKind.CSV,
    ".xlsx": DocumentKind.XLSX,
    ".pdf": DocumentKind.PDF,
}


def kind_from_filename(filename: str) -> DocumentKind:
    lowered = filename.lower()
    for ext, kind in _EXTENSIONS.items():
        if lowered.endswith(ext):
            return kind
    raise DecodeError(
        "unsupported file type; export the statement as CSV, XLSX or PDF",
        filename=filename,
    )


def decode_text(
    data: bytes,
    *,
    encodings: Sequence[str],
    anchors: Sequence[str],
    filename: str | None = None,
) -> str:
    """Decode ``data`` with the first encoding whose text contains an anchor.

    Decoding is strict: an encoding that raises on the bytes is skipped rather
    than replaced, so a GBK file is never accepted as garbled UTF-8.
    """

    for encoding in encodings:
        try:
            text = data.decode(encoding)
        except (UnicodeDecodeError, LookupError):
            continue
        if any(anchor in text for anchor in anchors):
            logger.debug("decoded %s as %s", filename or "<bytes>", encoding)
            return text
    raise DecodeError(
        "could not recognize the file's text encoding (tried "
        + ", ".join(encodings)
        + "); re-export the statement as UTF-8 CSV or as XLSX",
        filename=filename,
    )


def _is_password_failure(exc: BaseException) -> bool:
    seen: set[int] = set()
    cur: BaseException | None = exc
    while cur is not None and id(cur) not in seen:
        seen.add(id(cur))
        if isinstance(cur, PDFPasswordIncorrect):
            return True
        # PdfminerException wraps the original error as its first argument.
        inner = cur.args[0] if cur.args and isinstance(cur.args[0], BaseException) else None
        cur = inner or cur.__cause__ or cur.__context__
    return False


@contextmanager
def open_pdf(
    data: bytes,
    *,
    password: str | None = None,
    filename: str | None = None,
) -> Iterator[pdfplumber.PDF]:
    """Open ``data`` as a PDF, yielding the pdfplumber document.

    Raises
    ------
    AuthError
        The document is encrypted and ``password`` is missing or wrong.
    HeaderNotFoundError
        The bytes are not a readable PDF at all.
    """

    try:
        pdf = pdfplumber.open(io.BytesIO(data), password=password or "")
    except (PdfminerException, PSException, ValueError) as exc:
        if _is_password_failure(exc):
            msg = "password required" if not password else "incorrect password"
            raise AuthError(msg, filename=filename) from exc
        raise HeaderNotFoundError("not a readable PDF statement", filename=filename) from exc

    with pdf:
        yield pdf


__all__ = ["kind_from_filename", "decode_text", "open_pdf"]
