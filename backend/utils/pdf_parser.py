"""
PDF Parser Module
Handles extraction of text content from PDF documents
"""

import io
import logging
from typing import List, Optional

import fitz  # PyMuPDF
import pdfplumber
from PIL import Image

from utils.ocr_module import OCRProcessor

logger = logging.getLogger(__name__)

# Below this many characters a PDF is treated as scanned
MIN_TEXT_CHARS = 100


class PDFParser:
    """PDF document text extraction utility"""

    def __init__(self, ocr: Optional[OCRProcessor] = None):
        self.ocr = ocr or OCRProcessor()

    def extract_pages(self, data: bytes) -> List[str]:
        """
        Extract the text of each page

        pdfplumber is tried first. If it fails or returns very little text the
        document is re-read with PyMuPDF, running OCR on pages without a text
        layer.

        Args:
            data: Raw bytes of the PDF file

        Returns:
            List of non-empty page texts
        """
        pages: List[str] = []
        try:
            with pdfplumber.open(io.BytesIO(data)) as pdf:
                for page in pdf.pages:
                    text = page.extract_text() or ""
                    if text.strip():
                        pages.append(text.strip())
            logger.info(f"pdfplumber extracted {len(pages)} pages")
        except Exception as e:
            logger.warning(f"pdfplumber extraction failed: {str(e)}")
            pages = []

        if pages and sum(len(p) for p in pages) >= MIN_TEXT_CHARS:
            return pages

        logger.info("PDF appears to be scanned or nearly empty. Trying PyMuPDF...")
        return self._extract_with_pymupdf(data)

    def _extract_with_pymupdf(self, data: bytes) -> List[str]:
        pages: List[str] = []
        try:
            doc = fitz.open(stream=data, filetype="pdf")
        except Exception as e:
            logger.error(f"PyMuPDF could not open document: {str(e)}")
            return pages

        with doc:
            for pno in range(doc.page_count):
                page = doc.load_page(pno)
                text = page.get_text()
                if text.strip() and len(text.strip()) > 20:
                    pages.append(text.strip())
                    continue

                logger.info(f"No text found on page {pno + 1}, attempting OCR...")
                pix = page.get_pixmap(dpi=300, alpha=False)
                img = Image.frombytes("RGB", [pix.width, pix.height], pix.samples)
                ocr_text = self.ocr.image_to_text(img)
                if ocr_text.strip():
                    pages.append(ocr_text.strip())

        logger.info(f"PyMuPDF extraction completed. Extracted {len(pages)} pages.")
        return pages

    def extract_text(self, data: bytes) -> Optional[str]:
        pages = self.extract_pages(data)
        if not pages:
            logger.warning("No text content found in PDF")
            return None
        return "\n\n".join(pages)
