"""Tests for the ingestion command line."""
import pytest

from docqa import cli, db
from tests.conftest import FakeEmbedder


@pytest.fixture
def fake_backend(tmp_db, monkeypatch):
    embedder = FakeEmbedder(dimension=8)
    monkeypatch.setattr(cli, "get_embedder", lambda backend=None: embedder)
    return embedder


@pytest.fixture
def faq_file(tmp_path, handbook_text):
    path = tmp_path / "faq.txt"
    path.write_text(handbook_text, encoding="utf-8")
    return path


class TestIngestCli:
    def test_ingest_prints_document_id(self, fake_backend, faq_file, capsys):
        code = cli.main(["--file", str(faq_file), "--name", "FAQ", "--url", "https://example.org/faq"])

        out = capsys.readouterr().out
        assert code == 0
        assert "document_id: 1" in out
        assert "Chunk sizes" in out
        assert db.get_chunk_count(1) >= 1

    def test_quiet_prints_only_document_id(self, fake_backend, faq_file, capsys):
        code = cli.main(["--file", str(faq_file), "--name", "FAQ", "--quiet"])

        assert code == 0
        assert capsys.readouterr().out.strip().splitlines() == ["document_id: 1"]

    def test_relative_path_resolved_against_cwd(self, fake_backend, faq_file, monkeypatch):
        monkeypatch.chdir(faq_file.parent)
        assert cli.main(["--file", faq_file.name, "--name", "FAQ", "-q"]) == 0

    def test_missing_name_exits_with_status_1(self, fake_backend, faq_file):
        with pytest.raises(SystemExit) as exc_info:
            cli.main(["--file", str(faq_file)])
        assert exc_info.value.code == 1

    def test_unsupported_format(self, fake_backend, tmp_path, capsys):
        path = tmp_path / "slides.pptx"
        path.write_bytes(b"binary")

        assert cli.main(["--file", str(path), "--name", "Slides"]) == 1
        assert "Unsupported format" in capsys.readouterr().err

    def test_missing_file(self, fake_backend, tmp_path, capsys):
        assert cli.main(["--file", str(tmp_path / "nope.txt"), "--name", "Nope"]) == 1
        assert "not found" in capsys.readouterr().err

    def test_invalid_overlap(self, fake_backend, faq_file, capsys):
        code = cli.main(["--file", str(faq_file), "--name", "FAQ", "--size", "100", "--overlap", "100"])

        assert code == 1
        assert "Overlap" in capsys.readouterr().err

    def test_embedding_failure(self, tmp_db, faq_file, monkeypatch, capsys):
        monkeypatch.setattr(cli, "get_embedder", lambda backend=None: FakeEmbedder(fail=True))

        assert cli.main(["--file", str(faq_file), "--name", "FAQ"]) == 1
        assert "aborted" in capsys.readouterr().err

    def test_parser_defaults(self):
        args = cli.build_parser().parse_args(["--file", "a.txt", "--name", "A"])

        assert args.size == 800
        assert args.overlap == 120
        assert args.batch_size == 40
        assert args.uploaded_by == "ingest-script"
        assert args.embedding_backend is None
