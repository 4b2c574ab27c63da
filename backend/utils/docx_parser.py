"""
DOCX Parser Module
Handles extraction of text content from Microsoft Word documents
"""

import io
import logging
from typing import Optional

from docx import Document

logger = logging.getLogger(__name__)


class DocxParser:
    """Microsoft Word document text extraction utility"""

    def extract_text(self, data: bytes) -> Optional[str]:
        """
        Extract text content from DOCX bytes

        Paragraphs come first, followed by one line per table row with the
        non-empty cells joined by " | ".

        Args:
            data: Raw bytes of the DOCX file

        Returns:
            Extracted text content or None if extraction fails
        """
        try:
            doc = Document(io.BytesIO(data))
        except Exception as e:
            logger.error(f"DOCX text extraction failed: {str(e)}")
            return None

        text_content = []

        for paragraph in doc.paragraphs:
            if paragraph.text.strip():
                text_content.append(paragraph.text.strip())

        # SoF timelines are usually laid out as tables
        for table in doc.tables:
            for row in table.rows:
                row_text = [cell.text.strip() for cell in row.cells if cell.text.strip()]
                if row_text:
                    text_content.append(" | ".join(row_text))

        full_text = "\n".join(text_content)

        if not full_text.strip():
            logger.warning("No text content found in DOCX")
            return None

        logger.info(f"Successfully extracted {len(full_text)} characters from DOCX")
        return full_text
