"""
Upload Validator: inspects raw bytes before any processing happens.

Checks, in order, stopping at the first failure:
  1. Size       → non-empty and within the configured maximum
  2. Type       → real MIME type sniffed from the leading bytes, must be allowed
  3. Integrity  → images must decode, PDFs need a header and a sane length
  4. Security   → denylist scan for executables, script tags, PDF JavaScript

The security scan is a best-effort pre-filter, not a guarantee: it only
looks at the first 1 KB (10 KB for PDFs) and at known markers.
"""

import io
import logging
from dataclasses import dataclass, field

from PIL import Image

logger = logging.getLogger(__name__)

# (offset, magic bytes, MIME type); first match wins
SIGNATURES: list[tuple[int, bytes, str]] = [
    (0, b"\xff\xd8\xff", "image/jpeg"),
    (0, b"\x89PNG\r\n\x1a\n", "image/png"),
    (0, b"%PDF", "application/pdf"),
    (0, b"GIF87a", "image/gif"),
    (0, b"GIF89a", "image/gif"),
    (8, b"WEBP", "image/webp"),
    (0, b"II*\x00", "image/tiff"),
    (0, b"MM\x00*", "image/tiff"),
    (0, b"PK\x03\x04", "application/zip"),
    (0, b"MZ", "application/x-msdownload"),
    (0, b"\x7fELF", "application/x-executable"),
    (0, b"BM", "image/bmp"),
]

EXECUTABLE_TYPES = frozenset({"application/x-msdownload", "application/x-executable"})

SECURITY_SCAN_BYTES = 1024
PDF_SCAN_BYTES = 10 * 1024
MIN_IMAGE_BYTES = 100
MIN_PDF_BYTES = 64

# Lower-cased markers searched anywhere in the first SECURITY_SCAN_BYTES
SUSPICIOUS_MARKERS: list[tuple[bytes, str]] = [
    (b"this program cannot be run in dos mode", "embedded Windows executable"),
    (b"pk\x03\x04", "embedded ZIP archive"),
    (b"<script", "script tag"),
    (b"<iframe", "iframe tag"),
    (b"javascript(", "inline JavaScript"),
]
PDF_SCRIPT_MARKERS = (b"/JavaScript", b"/JS")


def detect_mime_type(data: bytes) -> str | None:
    """Sniff the MIME type from leading bytes. None when nothing matches."""
    for offset, magic, mime in SIGNATURES:
        if data[offset:offset + len(magic)] == magic:
            if mime == "image/webp" and data[:4] != b"RIFF":
                continue
            return mime
    return None


@dataclass
class ValidationResult:
    """Outcome of validate(). `kind` is one of size, type, integrity, security."""
    ok: bool
    detected_type: str | None = None
    error: str | None = None
    kind: str | None = None
    details: dict = field(default_factory=dict)


@dataclass
class CheckOutcome:
    name: str
    passed: bool
    detail: str = ""


class UploadValidator:
    """
    Pure, side-effect free validator.

    `max_size_bytes` and `allowed_mime_types` are the configured defaults;
    validate() accepts per-call overrides.
    """

    def __init__(self, max_size_bytes: int, allowed_mime_types: frozenset[str] | set[str]):
        self._max_size = max_size_bytes
        self._allowed = frozenset(allowed_mime_types)

    def validate(
        self,
        data: bytes,
        declared_mime_type: str | None = None,
        declared_size: int | None = None,
        max_size_bytes: int | None = None,
        allowed_mime_types: frozenset[str] | set[str] | None = None,
    ) -> ValidationResult:
        """Run the checks in order and stop at the first failure."""
        max_size = max_size_bytes if max_size_bytes is not None else self._max_size
        allowed = frozenset(allowed_mime_types) if allowed_mime_types is not None else self._allowed

        # --- 1. Size ---
        size_check = self.check_size(data, declared_size, max_size)
        if not size_check.passed:
            return ValidationResult(ok=False, error=size_check.detail, kind="size")

        # --- 2. Type (sniffed, declared type is advisory) ---
        detected = detect_mime_type(data)
        if declared_mime_type and detected and declared_mime_type.lower() != detected:
            logger.debug(f"Declared type {declared_mime_type} differs from detected {detected}")
        if detected in EXECUTABLE_TYPES:
            return ValidationResult(
                ok=False,
                detected_type=detected,
                error="File contains potentially malicious content",
                kind="security",
            )
        type_check = self.check_type(detected, allowed)
        if not type_check.passed:
            return ValidationResult(ok=False, detected_type=detected, error=type_check.detail, kind="type")

        # --- 3. Integrity ---
        integrity_check, details = self._integrity(data, detected)
        if not integrity_check.passed:
            return ValidationResult(
                ok=False, detected_type=detected, error=integrity_check.detail, kind="integrity"
            )

        # --- 4. Security ---
        security_check = self.check_security(data, detected)
        if not security_check.passed:
            return ValidationResult(
                ok=False, detected_type=detected, error=security_check.detail, kind="security"
            )

        return ValidationResult(ok=True, detected_type=detected, details=details)

    def run_checks(self, data: bytes) -> list[CheckOutcome]:
        """
        Run every check without short-circuiting (used to score a stored
        object). Integrity fails when the type is unknown.
        """
        detected = detect_mime_type(data)
        type_check = self.check_type(detected, self._allowed)
        if detected in EXECUTABLE_TYPES:
            type_check = CheckOutcome("type", False, f"Executable content detected ({detected})")
        integrity_check, _ = self._integrity(data, detected)
        return [
            self.check_size(data, None, self._max_size),
            type_check,
            integrity_check,
            self.check_security(data, detected),
        ]

    # ─── Individual checks ──────────────────────────────────

    @staticmethod
    def check_size(data: bytes, declared_size: int | None, max_size: int) -> CheckOutcome:
        size = len(data)
        if size == 0 or declared_size == 0:
            return CheckOutcome("size", False, "File is empty")
        if size > max_size or (declared_size is not None and declared_size > max_size):
            return CheckOutcome(
                "size", False, f"File size exceeds maximum allowed size of {format_file_size(max_size)}"
            )
        return CheckOutcome("size", True)

    @staticmethod
    def check_type(detected: str | None, allowed: frozenset[str]) -> CheckOutcome:
        if detected is None:
            return CheckOutcome("type", False, "Unable to determine file type")
        if allowed and detected not in allowed:
            return CheckOutcome(
                "type",
                False,
                f"File type {detected} is not allowed. Allowed types: {', '.join(sorted(allowed))}",
            )
        return CheckOutcome("type", True)

    @staticmethod
    def _integrity(data: bytes, detected: str | None) -> tuple[CheckOutcome, dict]:
        if detected is None:
            return CheckOutcome("integrity", False, "Unknown file format"), {}

        if detected.startswith("image/"):
            if len(data) < MIN_IMAGE_BYTES:
                return CheckOutcome("integrity", False, "Image file is too small to be valid"), {}
            try:
                with Image.open(io.BytesIO(data)) as img:
                    width, height = img.size
                    mode = img.mode
                    img.verify()
            except Exception as e:
                logger.debug(f"Image decode failed: {type(e).__name__}")
                return CheckOutcome("integrity", False, "Corrupted or invalid image file"), {}
            if width <= 0 or height <= 0:
                return CheckOutcome("integrity", False, "Image has no pixels"), {}
            return CheckOutcome("integrity", True), {"width": width, "height": height, "mode": mode}

        if detected == "application/pdf":
            if not data.startswith(b"%PDF-"):
                return CheckOutcome("integrity", False, "Invalid PDF file format"), {}
            if len(data) < MIN_PDF_BYTES:
                return CheckOutcome("integrity", False, "PDF file is too small to be valid"), {}
            return CheckOutcome("integrity", True), {}

        return CheckOutcome("integrity", True), {}

    @staticmethod
    def check_security(data: bytes, detected: str | None) -> CheckOutcome:
        head = data[:SECURITY_SCAN_BYTES]
        if head.startswith((b"MZ", b"\x7fELF")):
            return CheckOutcome("security", False, "File contains potentially malicious content")

        lowered = head.lower()
        for marker, label in SUSPICIOUS_MARKERS:
            if marker in lowered:
                logger.info(f"Security scan matched: {label}")
                return CheckOutcome("security", False, "File contains potentially malicious content")

        if detected == "application/pdf":
            window = data[:PDF_SCAN_BYTES]
            if any(marker in window for marker in PDF_SCRIPT_MARKERS):
                return CheckOutcome("security", False, "PDF contains JavaScript which is not allowed")

        return CheckOutcome("security", True)


def format_file_size(num_bytes: int) -> str:
    """Human readable size, e.g. 10485760 -> '10 MB'."""
    if num_bytes <= 0:
        return "0 Bytes"
    size = float(num_bytes)
    for unit in ("Bytes", "KB", "MB", "GB"):
        if size < 1024 or unit == "GB":
            return f"{round(size, 2):g} {unit}"
        size /= 1024
    return f"{num_bytes} Bytes"
