"""
OCR Module
Tesseract OCR for scanned SoF pages and photos
"""

import io
import logging
import shutil
from typing import Optional

import pytesseract
from PIL import Image, ImageFilter, ImageOps

logger = logging.getLogger(__name__)

TESSERACT_CONFIG = "--oem 1 --psm 6 -l eng"


class OCRProcessor:
    """OCR processing for maritime documents"""

    @staticmethod
    def is_available() -> bool:
        return shutil.which("tesseract") is not None

    def preprocess(self, img: Image.Image) -> Image.Image:
        gray = img.convert("L")
        w, h = gray.size
        if max(w, h) < 1800:
            scale = 2 if max(w, h) < 1000 else 1.5
            gray = gray.resize((int(w * scale), int(h * scale)))
        gray = ImageOps.autocontrast(gray)
        return gray.filter(ImageFilter.SHARPEN)

    def image_to_text(self, img: Image.Image) -> str:
        """
        Run Tesseract on a page image

        A binarised copy is tried first; when that yields almost nothing the
        grayscale image is used instead.
        """
        if not self.is_available():
            logger.warning("Tesseract OCR is not installed. Scanned pages will not yield text.")
            return ""
        try:
            gray = self.preprocess(img)
            bw = gray.point(lambda x: 0 if x < 155 else 255, mode="1")
            text = pytesseract.image_to_string(bw, config=TESSERACT_CONFIG)
            if len(text.strip()) < 20:
                text = pytesseract.image_to_string(gray, config=TESSERACT_CONFIG)
            return text
        except Exception as e:
            logger.error(f"OCR text extraction failed: {str(e)}")
            return ""

    def extract_text(self, data: bytes) -> Optional[str]:
        """Extract text from image bytes (PNG/JPEG)"""
        try:
            img = Image.open(io.BytesIO(data))
        except Exception as e:
            logger.error(f"Could not open image: {str(e)}")
            return None

        text = self.image_to_text(img)
        return text.strip() or None
