"""
PDF -> plain text (parser adapter).

- Uses pdfplumber to walk pages and words.
- Rebuilds lines by detecting vertical jumps between words, so the output
  reads like what an operator would paste from the same slip.
- Text-layer PDFs only; a scanned image yields '' and the caller falls back
  to manual entry.
"""

from typing import List

import pdfplumber

from harvestlog.util.logger import get_logger

LINE_JUMP = 3


def text_from_pdf(path: str) -> str:
    """
    Read a PDF and return its words joined into newline-separated lines.

    Pages are separated by a blank line. Words within a line keep pdfplumber's
    text-flow order.
    """
    logger = get_logger()
    logger.info(f"Reading slip PDF: {path}")

    pages: List[str] = []
    try:
        with pdfplumber.open(path) as pdf:
            for p_idx, page in enumerate(pdf.pages, start=1):
                words = page.extract_words(
                    use_text_flow=True,
                    keep_blank_chars=False,
                    x_tolerance=2,
                    y_tolerance=3,
                ) or []
                logger.debug(f"Page {p_idx}: {len(words)} words")

                lines: List[List[str]] = []
                last_y = None
                for w in words:
                    y0 = w.get("top")
                    if last_y is None or abs(y0 - last_y) > LINE_JUMP:
                        lines.append([])
                        last_y = y0
                    lines[-1].append(w["text"])
                pages.append("\n".join(" ".join(ln) for ln in lines))
    except Exception as e:
        logger.error(f"Error reading PDF {path}: {str(e)}")
        raise

    text = "\n\n".join(p for p in pages if p)
    logger.info(f"Extracted {len(text)} characters from {len(pages)} page(s)")
    return text
