"""Tests for CLI interface."""

import json
import uuid
from collections.abc import Iterator
from pathlib import Path
from unittest.mock import patch

import pytest

from src.quiz.cli import (
    SAMPLE_DOCUMENTS,
    demo_config,
    load_sample_course,
    main,
    run_demo,
    run_generate,
    run_search,
)
from src.quiz.config import QuizConfig
from src.quiz.models import QuestionType
from src.quiz.pipeline import QuizPipeline
from src.retrieval.store import ChromaVectorIndex


@pytest.fixture(autouse=True)
def keep_logging_config() -> Iterator[None]:
    """main() reconfigures the root logger; leave pytest's handlers alone."""
    with patch("src.quiz.cli.configure_logging"):
        yield


class TestCLI:
    def test_demo_runs_successfully(self, capsys: pytest.CaptureFixture[str]) -> None:
        run_demo("bucles", "Medio", 5)
        captured = capsys.readouterr()
        assert "AI Quiz Generator - Demo Mode" in captured.out
        assert "Ingesting" in captured.out
        assert "Results:" in captured.out
        assert "JSON output:" in captured.out
        data = json.loads(captured.out.split("JSON output:")[1])
        assert len(data["questions"]) == 5
        assert data["model"] == "OpenAI_GPT_4o_Mini"

    def test_sample_documents_valid(self) -> None:
        assert len(SAMPLE_DOCUMENTS) >= 3
        for ref, text in SAMPLE_DOCUMENTS:
            assert ref.subject_id == "PRG"
            assert len(text) > 0

    def test_load_sample_course(self) -> None:
        pipeline = QuizPipeline(demo_config())
        chunks = load_sample_course(pipeline)
        assert chunks >= len(SAMPLE_DOCUMENTS)
        assert pipeline.document_count == chunks

    def test_search_outputs_json(self, capsys: pytest.CaptureFixture[str]) -> None:
        run_search("bucle while", limit=3, subject="PRG")
        data = json.loads(capsys.readouterr().out)
        assert data["query"] == "bucle while"
        assert data["degraded"] is False
        assert data["returned"] == len(data["results"]) <= 3

    def test_generate_true_false(self, capsys: pytest.CaptureFixture[str]) -> None:
        run_generate(
            "bucles",
            email="ana@example.com",
            subject="PRG",
            language="Python",
            difficulty="Medio",
            num=2,
            question_type=QuestionType.TRUE_FALSE,
        )
        data = json.loads(capsys.readouterr().out)
        assert len(data["questions"]) == 2
        assert all(q["choices"] == ["Verdadero", "Falso"] for q in data["questions"])

    def test_main_no_args(self) -> None:
        with pytest.raises(SystemExit):
            with patch("sys.argv", ["aiquiz"]):
                main()

    def test_main_demo(self, capsys: pytest.CaptureFixture[str]) -> None:
        with patch("sys.argv", ["aiquiz", "demo", "--num", "2"]):
            main()
        captured = capsys.readouterr()
        assert "AI Quiz Generator" in captured.out

    def test_main_generate(self, capsys: pytest.CaptureFixture[str]) -> None:
        with patch("sys.argv", ["aiquiz", "generate", "funciones", "--num", "3"]):
            main()
        data = json.loads(capsys.readouterr().out)
        assert len(data["questions"]) == 3

    def test_main_ingest(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        notes = tmp_path / "bucles.txt"
        notes.write_text("El bucle for recorre los elementos de una lista.", encoding="utf-8")
        with patch("sys.argv", ["aiquiz", "ingest", str(notes), str(tmp_path / "missing.txt")]):
            main()
        out = capsys.readouterr().out
        assert "WARNING: File not found" in out
        assert "In-memory index" in out
        assert "Indexed 1 chunks from 1 documents" in out

    def test_main_ingest_persists_to_chroma(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
    ) -> None:
        monkeypatch.setenv("AIQUIZ_VECTOR_INDEX", "chroma")
        monkeypatch.setenv("AIQUIZ_CHROMA_PERSIST_DIR", str(tmp_path / "index"))
        monkeypatch.setenv("AIQUIZ_CHROMA_COLLECTION", f"cli_{uuid.uuid4().hex[:8]}")
        notes = tmp_path / "bucles.txt"
        notes.write_text("El bucle for recorre los elementos de una lista.", encoding="utf-8")
        with patch("sys.argv", ["aiquiz", "ingest", str(notes)]):
            main()

        out = capsys.readouterr().out
        assert "In-memory index" not in out
        assert "now holds 1 chunks" in out
        assert ChromaVectorIndex(QuizConfig()).count == 1

    def test_main_ingest_nothing_valid(self, tmp_path: Path) -> None:
        with pytest.raises(SystemExit):
            with patch("sys.argv", ["aiquiz", "ingest", str(tmp_path / "missing.txt")]):
                main()
