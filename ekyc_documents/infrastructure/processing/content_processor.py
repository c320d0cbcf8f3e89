"""
Content Processor: normalizes an accepted upload before storage.

Images: auto-rotate (EXIF) → resize to the policy's max dimension (never
upscale) → normalize contrast → encode (JPEG, or PNG when the image has
an alpha channel). If the result is still above 80% of the max upload
size, one extra lossy pass is kept only when strictly smaller.

A second pass is a no-op: encoded output carries a marker and is kept
as-is when it needs no resize, and an in-bounds source of the target
format is kept when re-encoding would not make it smaller.

PDFs: passed through unchanged (structure was checked by the validator).

Processing is best-effort: any failure returns the original bytes with
steps_applied == ["processing_failed"].
"""

import io
import logging
from dataclasses import dataclass, field

from PIL import Image, ImageOps
from PIL.PngImagePlugin import PngInfo

from ekyc_documents.core.entities.document import DocumentType
from ekyc_documents.core.exceptions import ProcessingDegraded
from ekyc_documents.core.interfaces.quality_gate import IQualityGate, QualityResult
from ekyc_documents.infrastructure.validation.upload_validator import detect_mime_type

logger = logging.getLogger(__name__)

COMPRESSION_THRESHOLD_RATIO = 0.8
FALLBACK_JPEG_QUALITY = 70
EXIF_ORIENTATION = 0x0112

# Written into every image this processor encodes (JPEG COM / PNG tEXt)
PROCESSED_MARKER = "ekyc-documents:processed"
PNG_MARKER_KEY = "Comment"
ALREADY_PROCESSED_STEP = "already_processed"


@dataclass(frozen=True)
class ProcessingPolicy:
    optimize: bool
    target_quality: int     # JPEG quality, 1-95
    max_dimension: int      # longest side, px


DEFAULT_POLICY = ProcessingPolicy(optimize=False, target_quality=85, max_dimension=2048)

POLICIES: dict[DocumentType, ProcessingPolicy] = {
    DocumentType.ID_CARD: ProcessingPolicy(True, 90, 2048),
    DocumentType.PASSPORT: ProcessingPolicy(True, 90, 2048),
    DocumentType.DRIVERS_LICENSE: ProcessingPolicy(True, 90, 2048),
    DocumentType.BUSINESS_LICENSE: ProcessingPolicy(True, 85, 3072),
    DocumentType.TAX_CERTIFICATE: ProcessingPolicy(True, 85, 3072),
    DocumentType.REGISTRATION_CERTIFICATE: ProcessingPolicy(True, 85, 3072),
    DocumentType.BANK_STATEMENT: ProcessingPolicy(True, 80, 2048),
    DocumentType.FINANCIAL_STATEMENT: ProcessingPolicy(True, 80, 2048),
    DocumentType.UTILITY_BILL: ProcessingPolicy(True, 80, 2048),
    DocumentType.PROOF_OF_ADDRESS: ProcessingPolicy(True, 80, 2048),
    DocumentType.OTHER: DEFAULT_POLICY,
}


def policy_for(document_type: DocumentType | str) -> ProcessingPolicy:
    try:
        return POLICIES.get(DocumentType(document_type), DEFAULT_POLICY)
    except ValueError:
        return DEFAULT_POLICY


@dataclass
class ProcessedFile:
    """Bytes to store plus what was done to them."""
    data: bytes
    size_bytes: int
    content_type: str
    dimensions: dict | None = None          # {"width": ..., "height": ...}
    steps_applied: list[str] = field(default_factory=list)
    quality: QualityResult | None = None

    @property
    def degraded(self) -> bool:
        return self.steps_applied == ["processing_failed"]


class ContentProcessor:
    """Applies the per-document-type processing policy."""

    def __init__(
        self,
        max_upload_size: int,
        optimization_enabled: bool = True,
        quality_gate: IQualityGate | None = None,
    ):
        self._max_upload_size = max_upload_size
        self._optimization_enabled = optimization_enabled
        self._quality_gate = quality_gate

    def process(
        self,
        data: bytes,
        document_type: DocumentType | str,
        mime_type: str | None = None,
    ) -> ProcessedFile:
        mime = mime_type or detect_mime_type(data) or "application/octet-stream"
        try:
            result = self._process(data, document_type, mime)
        except Exception as e:
            logger.warning(
                f"Processing degraded for {mime} ({document_type}), keeping original bytes: "
                f"{type(e).__name__}: {e}"
            )
            return ProcessedFile(
                data=data,
                size_bytes=len(data),
                content_type=mime,
                steps_applied=["processing_failed"],
            )

        if result.content_type.startswith("image/"):
            result.quality = self._evaluate_quality(result.data)

        logger.info(
            f"Processed {mime} ({document_type}): {len(data)} -> {result.size_bytes} bytes, "
            f"steps={result.steps_applied}"
        )
        return result

    # ─── Internals ──────────────────────────────────

    def _process(self, data: bytes, document_type: DocumentType | str, mime: str) -> ProcessedFile:
        policy = policy_for(document_type)

        if mime == "application/pdf":
            # Extension point: metadata stripping / linearization would go here.
            return ProcessedFile(data, len(data), mime, steps_applied=["pdf_validation"])

        if not mime.startswith("image/"):
            return ProcessedFile(data, len(data), mime)

        if not (self._optimization_enabled and policy.optimize):
            return ProcessedFile(data, len(data), mime, dimensions=self._dimensions(data))

        out, content_type, dimensions, steps = self._process_image(data, policy)
        if ALREADY_PROCESSED_STEP in steps:
            return ProcessedFile(out, len(out), content_type, dimensions, steps)

        if len(out) > self._max_upload_size * COMPRESSION_THRESHOLD_RATIO:
            compressed = self._compress(out, content_type)
            if compressed is not None and len(compressed) < len(out):
                out = compressed
                steps.append("compression")

        return ProcessedFile(out, len(out), content_type, dimensions, steps)

    def _process_image(self, data: bytes, policy: ProcessingPolicy) -> tuple[bytes, str, dict, list[str]]:
        steps: list[str] = []
        try:
            with Image.open(io.BytesIO(data)) as src:
                src.load()
                img = ImageOps.exif_transpose(src)
                source_format = src.format
                oriented = src.getexif().get(EXIF_ORIENTATION, 1) in (0, 1)
                marked = is_marked(src)
        except (OSError, ValueError, Image.DecompressionBombError) as e:
            raise ProcessingDegraded(f"image could not be decoded: {e}") from e
        steps.append("auto_rotate")

        within_bounds = max(img.size) <= policy.max_dimension
        if not within_bounds:
            img.thumbnail((policy.max_dimension, policy.max_dimension), Image.Resampling.LANCZOS)
            steps.append("resize")

        alpha = has_alpha(img)
        content_type = "image/png" if alpha else "image/jpeg"
        dimensions = {"width": img.width, "height": img.height}
        same_format = source_format == ("PNG" if alpha else "JPEG")
        untouched = within_bounds and oriented and same_format

        # output of an earlier pass is stored as-is
        if untouched and marked:
            return data, content_type, dimensions, steps + [ALREADY_PROCESSED_STEP]

        img = self._normalize(img, alpha)
        steps.append("normalize")

        if alpha:
            out = encode_png(img)
            steps.append("png_optimization")
        else:
            out = encode_jpeg(img, policy.target_quality)
            steps.append("jpeg_conversion")

        if untouched and len(out) >= len(data):
            out = data
        return out, content_type, dimensions, steps

    @staticmethod
    def _normalize(img: Image.Image, alpha: bool) -> Image.Image:
        """Stretch contrast to the full range; alpha is left untouched."""
        if alpha:
            rgba = img.convert("RGBA")
            rgb = ImageOps.autocontrast(rgba.convert("RGB"))
            rgb.putalpha(rgba.getchannel("A"))
            return rgb
        base = img.convert("L") if img.mode in ("1", "L", "I", "I;16", "F") else img.convert("RGB")
        return ImageOps.autocontrast(base)

    @staticmethod
    def _compress(data: bytes, content_type: str) -> bytes | None:
        """Lossy pass: lower JPEG quality, or a 256-colour palette for PNG (alpha kept)."""
        with Image.open(io.BytesIO(data)) as img:
            if content_type == "image/jpeg":
                return encode_jpeg(img, FALLBACK_JPEG_QUALITY)
            if content_type == "image/png":
                rgba = img.convert("RGBA")
                return encode_png(rgba.quantize(colors=256, method=Image.Quantize.FASTOCTREE))
        return None

    @staticmethod
    def _dimensions(data: bytes) -> dict | None:
        try:
            with Image.open(io.BytesIO(data)) as img:
                return {"width": img.width, "height": img.height}
        except (OSError, ValueError):
            return None

    def _evaluate_quality(self, data: bytes) -> QualityResult | None:
        if self._quality_gate is None:
            return None
        try:
            return self._quality_gate.evaluate(data)
        except Exception as e:
            logger.warning(f"Quality evaluation skipped: {type(e).__name__}: {e}")
            return None


def encode_jpeg(img: Image.Image, quality: int) -> bytes:
    buf = io.BytesIO()
    img.save(buf, "JPEG", quality=quality, optimize=True, progressive=True, comment=PROCESSED_MARKER)
    return buf.getvalue()


def encode_png(img: Image.Image) -> bytes:
    info = PngInfo()
    info.add_text(PNG_MARKER_KEY, PROCESSED_MARKER)
    buf = io.BytesIO()
    img.save(buf, "PNG", optimize=True, pnginfo=info)
    return buf.getvalue()


def is_marked(img: Image.Image) -> bool:
    """True for images this processor encoded itself."""
    marker = img.info.get("comment") or img.info.get(PNG_MARKER_KEY)
    if isinstance(marker, bytes):
        marker = marker.decode("latin-1")
    return marker == PROCESSED_MARKER


def has_alpha(img: Image.Image) -> bool:
    if img.mode in ("RGBA", "LA", "PA", "RGBa", "La"):
        return True
    return img.mode == "P" and "transparency" in img.info
