"""Tests for the administration CLI."""

from pathlib import Path
from unittest.mock import patch

import fitz  # PyMuPDF
import pytest

from invoice_chat.api.app import Components, build_components
from invoice_chat.cli import _find_images, export, ingest, main, purge
from invoice_chat.utils.config import AppConfig


@pytest.fixture
def components(config: AppConfig, ocr_engine, answer_client) -> Components:
    built = build_components(config, ocr_engine=ocr_engine, answer_client=answer_client)
    with built.session_factory() as session:
        built.auth.register(session, "alice@example.com", "password123")
    return built


@pytest.fixture
def image_dir(tmp_path: Path, image_bytes) -> Path:
    folder = tmp_path / "scans"
    folder.mkdir()
    (folder / "a.png").write_bytes(image_bytes())
    (folder / "b.jpg").write_bytes(image_bytes(fmt="JPEG"))
    (folder / "notes.txt").write_text("not an image")
    return folder


class TestFindImages:
    """Tests for _find_images."""

    def test_expands_directories(self, image_dir: Path) -> None:
        files = _find_images([image_dir])
        assert [f.name for f in files] == ["a.png", "b.jpg"]

    def test_keeps_explicit_files(self, image_dir: Path) -> None:
        assert _find_images([image_dir / "a.png"]) == [image_dir / "a.png"]


class TestIngest:
    """Tests for the ingest command."""

    def test_ingests_folder(
        self, components: Components, image_dir: Path, capsys: pytest.CaptureFixture
    ) -> None:
        summary = ingest(components, "alice@example.com", [image_dir], verbose=True)

        assert summary == {"total": 2, "successful": 2, "failed": 0}
        with components.session_factory() as session:
            documents = components.documents.list_for_user(session, 1)
            assert sorted(d.original_name for d in documents) == ["a.png", "b.jpg"]
        assert "Ingesting [1/2]" in capsys.readouterr().out

    def test_counts_failures(
        self, components: Components, image_dir: Path, ocr_engine
    ) -> None:
        ocr_engine.fail = True
        summary = ingest(components, "alice@example.com", [image_dir])
        assert summary == {"total": 2, "successful": 0, "failed": 2}

    def test_rejects_unsupported_file(
        self, components: Components, image_dir: Path
    ) -> None:
        summary = ingest(components, "alice@example.com", [image_dir / "notes.txt"])
        assert summary["failed"] == 1

    def test_unknown_user_exits(self, components: Components, image_dir: Path) -> None:
        with pytest.raises(SystemExit) as exc_info:
            ingest(components, "nobody@example.com", [image_dir])
        assert exc_info.value.code == 1


class TestExportAndPurge:
    """Tests for the export and purge commands."""

    def test_export_writes_pdf(
        self, components: Components, image_dir: Path, tmp_path: Path
    ) -> None:
        ingest(components, "alice@example.com", [image_dir / "a.png"])
        output = tmp_path / "out" / "report.pdf"

        export(components, "alice@example.com", 1, output)

        with fitz.open(output) as pdf:
            assert pdf.page_count == 2

    def test_export_missing_document_exits(
        self, components: Components, tmp_path: Path
    ) -> None:
        with pytest.raises(SystemExit) as exc_info:
            export(components, "alice@example.com", 42, tmp_path / "x.pdf")
        assert exc_info.value.code == 1
        assert not (tmp_path / "x.pdf").exists()

    def test_purge(self, components: Components, image_dir: Path) -> None:
        ingest(components, "alice@example.com", [image_dir])
        assert purge(components, "alice@example.com") == 2
        assert purge(components, "alice@example.com") == 0


class TestMain:
    """Tests for argument parsing and dispatch."""

    def test_no_command_prints_help(self) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main([])
        assert exc_info.value.code == 0

    def test_init_db(self, config: AppConfig, capsys: pytest.CaptureFixture) -> None:
        main(["init-db"], config=config)
        assert "Database initialized" in capsys.readouterr().out

    def test_ingest_missing_path(self, config: AppConfig, tmp_path: Path) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main(["ingest", "alice@example.com", str(tmp_path / "missing")], config=config)
        assert exc_info.value.code == 1

    def test_dispatches_ingest(
        self, config: AppConfig, components: Components, image_dir: Path
    ) -> None:
        with patch("invoice_chat.cli.build_components", return_value=components):
            main(["ingest", "alice@example.com", str(image_dir)], config=config)

        with components.session_factory() as session:
            assert len(components.documents.list_for_user(session, 1)) == 2

    def test_dispatches_purge(
        self,
        config: AppConfig,
        components: Components,
        image_dir: Path,
        capsys: pytest.CaptureFixture,
    ) -> None:
        ingest(components, "alice@example.com", [image_dir])
        with patch("invoice_chat.cli.build_components", return_value=components):
            main(["purge", "alice@example.com"], config=config)
        assert "Deleted 2 documents" in capsys.readouterr().out
