"""
Test Suite for the Outer Surfaces
=================================
HTTP service, CLI and source loading.
"""

from __future__ import annotations

import json
from unittest.mock import MagicMock, patch

import pytest
from click.testing import CliRunner

from qbank_ingest.cli import cli
from qbank_ingest.engine import IngestConfig
from qbank_ingest.models import ExtractedQuestion
from qbank_ingest.server import create_app
from qbank_ingest.sources import load_text


DOCUMENT = (
    "CertyIQ\n"
    "1. What is a virus?\n"
    "A) malware\n"
    "B) tool\n"
    "Answer: A\n"
    "\n"
    "2. Which of these are malware?\n"
    "A) worm\n"
    "B) router\n"
    "C) trojan\n"
    "Answer: A, C\n"
    "Page 1 of 3\n"
)


class StubExtractor:
    async def extract(self, block):
        return ExtractedQuestion(
            question_text="Recovered?", options=["x", "y"], correct_answers=["y"]
        )


@pytest.fixture
def client():
    app = create_app({
        "TESTING": True,
        "INGEST_CONFIG": IngestConfig(ai_enabled=False),
    })
    return app.test_client()


@pytest.fixture
def source_file(tmp_path):
    path = tmp_path / "exam.txt"
    path.write_text(DOCUMENT, encoding="utf-8")
    return path


# ═══════════════════════════════════════════════════════════════════════════════
# HTTP SERVICE TESTS
# ═══════════════════════════════════════════════════════════════════════════════


class TestServer:
    """Test the Flask endpoints."""

    def test_health(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.get_json()["status"] == "healthy"

    def test_info(self, client):
        data = client.get("/api/info").get_json()
        assert data["version"] == "1.0.0"
        assert data["ai_enabled"] is False
        assert data["strategy_order"] == ["heuristic", "ai"]

    def test_parse(self, client):
        resp = client.post("/api/parse", json={"text": DOCUMENT})
        assert resp.status_code == 200

        data = resp.get_json()
        first, second = data["questions"]
        assert first["questionText"] == "What is a virus?"
        assert first["correctAnswer"] == "malware"
        assert first["questionType"] == "single"
        assert first["chapter"] is None
        assert second["correctAnswer"] == ["worm", "trojan"]
        assert second["questionType"] == "multiple"
        assert data["report"]["blocks_detected"] == 2
        assert data["report"]["records_emitted"] == 2

    def test_parse_overrides(self, client):
        resp = client.post(
            "/api/parse",
            json={"text": DOCUMENT, "source": "paste", "subject": "Malware"},
        )
        q = resp.get_json()["questions"][0]
        assert q["source"] == "paste"
        assert q["subject"] == "Malware"

    def test_parse_empty_text(self, client):
        resp = client.post("/api/parse", json={"text": ""})
        assert resp.status_code == 200
        assert resp.get_json()["questions"] == []

    @pytest.mark.parametrize("body", [{}, {"text": 42}, {"text": None}, [1, 2]])
    def test_parse_rejects_bad_text(self, client, body):
        resp = client.post("/api/parse", json=body)
        assert resp.status_code == 400
        assert "error" in resp.get_json()

    def test_parse_rejects_non_json(self, client):
        resp = client.post("/api/parse", data="text", content_type="text/plain")
        assert resp.status_code == 400

    def test_parse_with_extractor(self):
        app = create_app({
            "TESTING": True,
            "INGEST_CONFIG": IngestConfig(),
            "INGEST_EXTRACTOR": StubExtractor(),
        })
        resp = app.test_client().post(
            "/api/parse", json={"text": "A) x\nB) y\nAnswer: B"}
        )
        [q] = resp.get_json()["questions"]
        assert q["parseTier"] == "ai"
        assert q["correctAnswer"] == "y"


# ═══════════════════════════════════════════════════════════════════════════════
# CLI TESTS
# ═══════════════════════════════════════════════════════════════════════════════


class TestCLI:
    """Test the click commands."""

    def test_parse_json_output(self, source_file):
        result = CliRunner().invoke(
            cli, ["parse", str(source_file), "--no-ai", "--json-output"]
        )
        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert len(data["questions"]) == 2
        assert data["questions"][0]["correctAnswer"] == "malware"
        assert data["report"]["blocks_detected"] == 2

    def test_parse_writes_output_file(self, source_file, tmp_path):
        out = tmp_path / "out" / "result.json"
        result = CliRunner().invoke(
            cli,
            [
                "parse", str(source_file), "--no-ai",
                "--source-label", "exam.txt", "-o", str(out),
            ],
        )
        assert result.exit_code == 0, result.output
        assert "Parsed Questions" in result.output
        data = json.loads(out.read_text(encoding="utf-8"))
        assert data["questions"][0]["source"] == "exam.txt"

    def test_parse_uses_environment_defaults(self, source_file):
        result = CliRunner().invoke(
            cli,
            ["parse", str(source_file), "--no-ai", "--json-output"],
            env={"QBANK_SUBJECT": "Cloud", "QBANK_DIFFICULTY": "hard"},
        )
        assert result.exit_code == 0, result.output
        q = json.loads(result.stdout)["questions"][0]
        assert q["subject"] == "Cloud"
        assert q["difficulty"] == "hard"

    def test_parse_options_beat_environment(self, source_file):
        result = CliRunner().invoke(
            cli,
            [
                "parse", str(source_file), "--no-ai", "--json-output",
                "--subject", "Malware", "--difficulty", "easy",
            ],
            env={"QBANK_SUBJECT": "Cloud", "QBANK_DIFFICULTY": "hard"},
        )
        assert result.exit_code == 0, result.output
        q = json.loads(result.stdout)["questions"][0]
        assert q["subject"] == "Malware"
        assert q["difficulty"] == "easy"

    def test_parse_stdin(self):
        result = CliRunner().invoke(
            cli,
            ["parse", "-", "--no-ai", "--json-output"],
            input=DOCUMENT,
        )
        assert result.exit_code == 0, result.output
        assert len(json.loads(result.stdout)["questions"]) == 2

    def test_parse_missing_file(self, tmp_path):
        result = CliRunner().invoke(
            cli, ["parse", str(tmp_path / "missing.txt"), "--no-ai"]
        )
        assert result.exit_code == 1
        assert "Error" in result.output

    def test_segment(self, source_file):
        result = CliRunner().invoke(cli, ["segment", str(source_file)])
        assert result.exit_code == 0, result.output
        assert "2 blocks detected" in result.output

    def test_normalize(self, source_file):
        result = CliRunner().invoke(cli, ["normalize", str(source_file)])
        assert result.exit_code == 0, result.output
        assert "CertyIQ" not in result.output
        assert "Page 1 of 3" not in result.output
        assert result.output.startswith("1. What is a virus?")

    def test_version(self):
        result = CliRunner().invoke(cli, ["--version"])
        assert "1.0.0" in result.output


# ═══════════════════════════════════════════════════════════════════════════════
# SOURCE LOADING TESTS
# ═══════════════════════════════════════════════════════════════════════════════


class TestSources:

    def test_text_file(self, source_file):
        assert load_text(str(source_file)) == DOCUMENT

    def test_bom_stripped(self, tmp_path):
        path = tmp_path / "bom.txt"
        path.write_bytes("\ufeffWhat is IAM?".encode("utf-8"))
        assert load_text(str(path)) == "What is IAM?"

    def test_missing(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_text(str(tmp_path / "nope.pdf"))

    def test_pdf_pages(self, tmp_path):
        path = tmp_path / "exam.pdf"
        path.write_bytes(b"%PDF-1.4")

        pages = [MagicMock(), MagicMock(), MagicMock()]
        for idx, page in enumerate(pages, start=1):
            page.get_text.return_value = f"page {idx} text"
        doc = MagicMock()
        doc.page_count = len(pages)
        doc.__getitem__.side_effect = lambda i: pages[i]
        doc.__enter__.return_value = doc

        with patch("qbank_ingest.sources.fitz.open", return_value=doc) as fitz_open:
            text = load_text(str(path), page_range=(2, 3))

        fitz_open.assert_called_once()
        assert text == "page 2 text\n\npage 3 text"
        pages[1].get_text.assert_called_once_with("text")
