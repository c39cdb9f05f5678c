"""Unit tests for source file readers."""
import pytest
from pypdf import PdfWriter

from docqa.errors import SourceFormatError
from docqa.rag.extract import parse_frontmatter, read_source


class TestReadSource:
    def test_reads_plain_text(self, tmp_path):
        path = tmp_path / "faq.txt"
        path.write_text("Question one\n\nAnswer one", encoding="utf-8")

        source = read_source(path)

        assert source.text == "Question one\n\nAnswer one"
        assert source.file_name == "faq.txt"
        assert source.frontmatter == {}

    def test_markdown_frontmatter_removed(self, tmp_path):
        path = tmp_path / "rules.md"
        path.write_text("---\ntitle: Rules\nversion: 2\n---\n# Rules\n\nBe kind.", encoding="utf-8")

        source = read_source(path)

        assert source.frontmatter == {"title": "Rules", "version": 2}
        assert source.text == "# Rules\n\nBe kind."

    def test_extension_is_case_insensitive(self, tmp_path):
        path = tmp_path / "NOTES.TXT"
        path.write_text("notes", encoding="utf-8")

        assert read_source(path).text == "notes"

    @pytest.mark.parametrize("name", ["slides.pptx", "data.csv", "README"])
    def test_unsupported_extension(self, tmp_path, name):
        path = tmp_path / name
        path.write_text("content", encoding="utf-8")

        with pytest.raises(SourceFormatError, match="Unsupported format"):
            read_source(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(SourceFormatError, match="not found"):
            read_source(tmp_path / "missing.txt")

    def test_invalid_utf8(self, tmp_path):
        path = tmp_path / "latin.txt"
        path.write_bytes(b"caf\xe9 \xff\xfe")

        with pytest.raises(SourceFormatError):
            read_source(path)

    def test_corrupt_pdf(self, tmp_path):
        path = tmp_path / "broken.pdf"
        path.write_bytes(b"this is not a pdf")

        with pytest.raises(SourceFormatError, match="Could not read PDF"):
            read_source(path)

    def test_pdf_without_text_layer(self, tmp_path):
        path = tmp_path / "scan.pdf"
        writer = PdfWriter()
        writer.add_blank_page(width=200, height=200)
        with open(path, "wb") as f:
            writer.write(f)

        source = read_source(path)

        assert source.text.strip() == ""
        assert source.file_name == "scan.pdf"


class TestParseFrontmatter:
    def test_no_frontmatter(self):
        assert parse_frontmatter("# Title\n\nBody") == ({}, "# Title\n\nBody")

    def test_invalid_yaml_leaves_content(self):
        content = "---\nkey: [unclosed\n---\nBody"
        assert parse_frontmatter(content) == ({}, content)

    def test_non_mapping_leaves_content(self):
        content = "---\n- a\n- b\n---\nBody"
        assert parse_frontmatter(content) == ({}, content)
