"""Source readers that turn uploaded files into raw text.

Handles:
- PDF text extraction (pypdf)
- Plain text files
- Markdown files with optional YAML frontmatter
"""
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Tuple

import structlog
import yaml
from pypdf import PdfReader
from pypdf.errors import PyPdfError

from docqa import config
from docqa.errors import SourceFormatError

logger = structlog.get_logger()

# Regex for YAML frontmatter (must be at start of file)
FRONTMATTER_PATTERN = re.compile(r"^---\s*\n(.*?)\n---\s*\n", re.DOTALL)


@dataclass
class SourceDocument:
    """Raw text read from a source file."""

    path: Path
    text: str
    frontmatter: Dict[str, Any] = field(default_factory=dict)

    @property
    def file_name(self) -> str:
        return self.path.name


def read_source(file_path: Path) -> SourceDocument:
    """Read a supported source file into raw text.

    Args:
        file_path: Path to a .pdf, .txt or .md file

    Returns:
        SourceDocument with the extracted text

    Raises:
        SourceFormatError: If the file is missing, unsupported or unreadable
    """
    file_path = Path(file_path)
    ext = file_path.suffix.lower()

    if ext not in config.SUPPORTED_EXTENSIONS:
        raise SourceFormatError(
            f"Unsupported format: {ext or '(none)'}. "
            f"Use one of {', '.join(config.SUPPORTED_EXTENSIONS)}"
        )

    if not file_path.is_file():
        raise SourceFormatError(f"Source file not found: {file_path}")

    if ext == ".pdf":
        text = _read_pdf(file_path)
        frontmatter = {}
    else:
        try:
            content = file_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.error("source_read_failed", path=str(file_path), error=str(e))
            raise SourceFormatError(f"Could not read {file_path.name}: {e}") from e

        if ext == ".md":
            frontmatter, text = parse_frontmatter(content)
        else:
            frontmatter, text = {}, content

    logger.info(
        "source_read",
        path=str(file_path),
        format=ext,
        has_frontmatter=bool(frontmatter),
        content_length=len(text),
    )

    return SourceDocument(path=file_path, text=text, frontmatter=frontmatter)


def _read_pdf(file_path: Path) -> str:
    """Extract the text layer of every page of a PDF."""
    try:
        reader = PdfReader(str(file_path))
        if reader.is_encrypted:
            raise SourceFormatError(
                f"{file_path.name} is password protected. Export it to .txt first."
            )
        pages = [page.extract_text() or "" for page in reader.pages]
    except SourceFormatError:
        raise
    except (PyPdfError, OSError, ValueError) as e:
        logger.error("pdf_read_failed", path=str(file_path), error=str(e))
        raise SourceFormatError(
            f"Could not read PDF {file_path.name}. "
            "Try exporting it to .txt or check that it is not protected."
        ) from e

    logger.debug("pdf_pages_extracted", path=str(file_path), page_count=len(pages))
    return "\n\n".join(pages)


def parse_frontmatter(content: str) -> Tuple[Dict[str, Any], str]:
    """Extract YAML frontmatter from markdown content.

    Content whose leading block is not a YAML mapping is returned untouched.

    Args:
        content: Full markdown content

    Returns:
        Tuple of (frontmatter_dict, content_without_frontmatter)
    """
    match = FRONTMATTER_PATTERN.match(content)

    if not match:
        return {}, content

    yaml_content = match.group(1)
    try:
        frontmatter = yaml.safe_load(yaml_content)
    except yaml.YAMLError as e:
        logger.warning(
            "frontmatter_parse_error",
            error=str(e),
            yaml_preview=yaml_content[:100],
        )
        return {}, content

    if frontmatter is None:
        frontmatter = {}
    if not isinstance(frontmatter, dict):
        return {}, content

    return frontmatter, content[match.end():]
