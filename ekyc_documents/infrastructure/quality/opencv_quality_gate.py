"""
Adapter: OpenCV Quality Gate.

Scores a document image with four classic CV metrics:
  1. Blur       → variance of the Laplacian
  2. Brightness → mean and spread of the V channel (HSV)
  3. Resolution → shortest side
  4. Framing    → share of the frame covered by the document

The score goes into processing metadata and verification details for
manual reviewers; uploads are never rejected on quality alone.
"""

import cv2
import numpy as np

from ekyc_documents.core.interfaces.quality_gate import IQualityGate, QualityResult

# Metrics are computed on a copy no larger than this (longest side, px)
ANALYSIS_MAX_SIDE = 1600


class OpenCVQualityGate(IQualityGate):
    """Deterministic quality scoring, a few ms per image."""

    def __init__(
        self,
        blur_threshold: float = 100.0,
        brightness_min: int = 50,
        brightness_max: int = 220,
        min_resolution: int = 640,
        min_doc_area_ratio: float = 0.05,
    ):
        self._blur_threshold = blur_threshold
        self._brightness_min = brightness_min
        self._brightness_max = brightness_max
        self._min_resolution = min_resolution
        self._min_doc_area_ratio = min_doc_area_ratio

    def evaluate(self, image_bytes: bytes) -> QualityResult:
        img = cv2.imdecode(np.frombuffer(image_bytes, dtype=np.uint8), cv2.IMREAD_COLOR)
        if img is None:
            return QualityResult(
                quality_ok=False,
                quality_score=0.0,
                reasons=["INVALID_IMAGE"],
                details={"error": "image could not be decoded"},
            )

        h, w = img.shape[:2]
        min_side = min(h, w)
        img = self._downscale(img)

        reasons: list[str] = []

        blur = self._blur(img)
        if blur < self._blur_threshold:
            reasons.append("BLUR_HIGH")

        brightness, spread = self._brightness(img)
        if brightness < self._brightness_min:
            reasons.append("TOO_DARK")
        elif brightness > self._brightness_max:
            reasons.append("TOO_BRIGHT")
        if spread < 30:
            reasons.append("LOW_CONTRAST")

        if min_side < self._min_resolution:
            reasons.append("LOW_RESOLUTION")

        doc_ratio = self._framing(img)
        if doc_ratio < self._min_doc_area_ratio:
            reasons.append("CROP_PARTIAL")

        score = self._score(blur, brightness, spread, min_side, doc_ratio)
        return QualityResult(
            quality_ok=not reasons,
            quality_score=round(score, 3),
            reasons=reasons,
            details={
                "blur_score": round(blur, 2),
                "brightness_mean": round(brightness, 2),
                "brightness_std": round(spread, 2),
                "resolution": f"{w}x{h}",
                "doc_area_ratio": round(doc_ratio, 3),
            },
        )

    # ─── Metrics ──────────────────────────────────

    @staticmethod
    def _downscale(img: np.ndarray) -> np.ndarray:
        h, w = img.shape[:2]
        longest = max(h, w)
        if longest <= ANALYSIS_MAX_SIDE:
            return img
        factor = ANALYSIS_MAX_SIDE / longest
        return cv2.resize(img, (int(w * factor), int(h * factor)), interpolation=cv2.INTER_AREA)

    @staticmethod
    def _blur(img: np.ndarray) -> float:
        """Higher is sharper. Typically >300 sharp, <100 blurred."""
        gray = cv2.cvtColor(img, cv2.COLOR_BGR2GRAY)
        return float(cv2.Laplacian(gray, cv2.CV_64F).var())

    @staticmethod
    def _brightness(img: np.ndarray) -> tuple[float, float]:
        v = cv2.cvtColor(img, cv2.COLOR_BGR2HSV)[:, :, 2]
        return float(v.mean()), float(v.std())

    @staticmethod
    def _framing(img: np.ndarray) -> float:
        """Largest edge-bounded contour over the frame area, 0.0 to 1.0."""
        gray = cv2.cvtColor(img, cv2.COLOR_BGR2GRAY)
        area = gray.shape[0] * gray.shape[1]
        if area == 0:
            return 0.0
        edges = cv2.Canny(cv2.GaussianBlur(gray, (5, 5), 0), 50, 150)
        kernel = cv2.getStructuringElement(cv2.MORPH_RECT, (9, 9))
        contours, _ = cv2.findContours(
            cv2.dilate(edges, kernel, iterations=2), cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE
        )
        if not contours:
            return 0.0
        largest = max(contours, key=cv2.contourArea)
        return min(cv2.contourArea(largest) / area, 1.0)

    @staticmethod
    def _score(blur: float, brightness: float, spread: float, min_side: int, doc_ratio: float) -> float:
        """Weighted mean of the normalized metrics, 0.0 to 1.0."""
        blur_norm = min(blur / 500.0, 1.0)
        brightness_norm = max(1.0 - abs(brightness - 128.0) / 128.0, 0.0)
        contrast_norm = min(spread / 70.0, 1.0)
        resolution_norm = min(min_side / 1280.0, 1.0)
        framing_norm = min(doc_ratio / 0.9, 1.0)
        score = (
            blur_norm * 0.30
            + brightness_norm * 0.20
            + contrast_norm * 0.10
            + resolution_norm * 0.15
            + framing_norm * 0.25
        )
        return max(0.0, min(score, 1.0))
