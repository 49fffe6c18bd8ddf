"""Batch CLI: input expansion, outputs and the JSON summary."""
from __future__ import annotations

import json
import os

from PIL import Image

from conftest import StubBlockOCR, StubDetector, StubTranslator, hello_block
from bubble_overlay import cli
from bubble_overlay.services.pipeline import OverlayPipeline


def _write_page(path, page) -> None:
    Image.fromarray(page).save(path)


def test_parse_args_defaults() -> None:
    args = cli.parse_args(["--input", "pages", "--target-language", "fr"])
    assert args.input == ["pages"]
    assert args.target_language == "FR"
    assert args.ocr_service in ("tesseract", "google_vision", "rapid")


def test_expand_inputs_dirs_globs_and_dedup(tmp_path, page) -> None:
    (tmp_path / "sub").mkdir()
    _write_page(tmp_path / "a.png", page)
    _write_page(tmp_path / "sub" / "b.png", page)
    (tmp_path / "notes.txt").write_text("skip me")

    found = cli.expand_inputs([str(tmp_path), str(tmp_path / "*.png")])
    names = sorted(os.path.basename(p) for p in found)
    assert names == ["a.png", "b.png"]


def test_main_writes_outputs_and_summary(tmp_path, monkeypatch, settings, font_manager, page, bubble_raw) -> None:
    pages = tmp_path / "pages"
    pages.mkdir()
    _write_page(pages / "p1.png", page)
    (pages / "broken.png").write_bytes(b"not an image")
    outdir = tmp_path / "out"

    def fake_build_pipeline(args, _settings):
        return OverlayPipeline(
            detector=StubDetector([bubble_raw]),
            ocr=StubBlockOCR([hello_block()]),
            translator=StubTranslator({"HELLO WORLD": "hola mundo"}),
            font_manager=font_manager,
            settings=settings,
        )

    monkeypatch.setattr(cli, "build_pipeline", fake_build_pipeline)
    code = cli.main(["--input", str(pages), "--outdir", str(outdir), "--log-level", "WARNING"])

    assert code == 1
    assert (outdir / "p1.translated.png").exists()
    summary = json.loads((outdir / "summary.json").read_text(encoding="utf-8"))
    assert summary["total"] == 2
    assert summary["processed"] == 1
    assert summary["errors"] == 1
    by_name = {os.path.basename(f["path"]): f for f in summary["files"]}
    assert by_name["p1.png"]["detections"][0]["translated_text"] == "HOLA MUNDO"
    assert by_name["broken.png"]["status"] == "error"


def test_main_without_inputs_returns_2(tmp_path) -> None:
    assert cli.main(["--input", str(tmp_path / "nothing"), "--outdir", str(tmp_path / "out")]) == 2
