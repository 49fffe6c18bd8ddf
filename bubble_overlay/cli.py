"""
Batch command line front end.

  bubble-overlay --input pages/*.png --outdir out --summary out/summary.json
"""

import argparse
import glob
import json
import logging
import os
import sys
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from bubble_overlay.config import Settings, get_settings
from bubble_overlay.errors import OverlayError
from bubble_overlay.logging_config import setup_logging
from bubble_overlay.services.detector import OnnxDetector
from bubble_overlay.services.layout import FontManager
from bubble_overlay.services.ocr import build_ocr
from bubble_overlay.services.pipeline import OverlayPipeline
from bubble_overlay.services.translation import build_translator
from bubble_overlay.utils.image_utils import encode_png, read_image_file

logger = logging.getLogger(__name__)

IMAGE_EXTS = [".jpg", ".jpeg", ".png", ".webp", ".bmp", ".tif", ".tiff"]


@dataclass
class FileResult:
    path: str
    status: str
    reason: str = ""
    regions: int = 0
    out_path: str = ""
    time_ms: int = 0
    detections: List[Dict[str, Any]] = field(default_factory=list)


def now_ms() -> int:
    return int(time.time() * 1000)


def is_image_file(p: str) -> bool:
    return os.path.splitext(p)[1].lower() in IMAGE_EXTS


def _walk_images(root_dir: str) -> List[str]:
    found = []
    for root, _, files in os.walk(root_dir):
        for f in sorted(files):
            p = os.path.join(root, f)
            if is_image_file(p):
                found.append(p)
    return found


def expand_inputs(inputs: List[str]) -> List[str]:
    """Files, directories and glob patterns -> unique image paths, in order."""
    out: List[str] = []
    for item in inputs:
        item = item.strip()
        if not item:
            continue
        if any(ch in item for ch in ["*", "?", "["]):
            for m in sorted(glob.glob(item, recursive=True)):
                if os.path.isdir(m):
                    out.extend(_walk_images(m))
                elif is_image_file(m):
                    out.append(m)
        elif os.path.isdir(item):
            out.extend(_walk_images(item))
        elif is_image_file(item):
            out.append(item)

    seen = set()
    uniq = []
    for p in out:
        ap = os.path.abspath(p)
        if ap not in seen:
            uniq.append(p)
            seen.add(ap)
    return uniq


def output_path_for(path: str, outdir: str) -> str:
    name = os.path.splitext(os.path.basename(path))[0]
    return os.path.join(outdir, f"{name}.translated.png")


def build_pipeline(args: argparse.Namespace, settings: Settings) -> OverlayPipeline:
    ocr = build_ocr(
        args.ocr_service,
        source_language=args.source_language,
        google_api_key=settings.GOOGLE_API_KEY,
        tesseract_cmd=settings.TESSERACT_CMD,
        timeout=settings.HTTP_TIMEOUT,
    )
    translator = build_translator(
        args.translation_service,
        google_api_key=settings.GOOGLE_API_KEY,
        deepl_api_key=settings.DEEPL_API_KEY,
        gemini_api_key=settings.GEMINI_API_KEY,
        gemini_model=settings.GEMINI_MODEL,
        timeout=settings.HTTP_TIMEOUT,
    )
    font_paths = [args.font] if args.font else ([settings.FONT_PATH] if settings.FONT_PATH else [])
    return OverlayPipeline(
        detector=OnnxDetector(args.model, input_size=settings.DETECTOR_INPUT_SIZE),
        ocr=ocr,
        translator=translator,
        font_manager=FontManager(font_paths, settings.MIN_FONT_PX),
        settings=settings,
        source_language=args.source_language,
        target_language=args.target_language,
    )


def process_file(path: str, pipeline: OverlayPipeline, outdir: str) -> FileResult:
    t0 = now_ms()
    image = read_image_file(path)
    result = pipeline.run(image)
    out_path = output_path_for(path, outdir)
    with open(out_path, "wb") as f:
        f.write(encode_png(result.image))
    return FileResult(
        path=path,
        status="processed",
        reason=f"{len(result.detections)} regions",
        regions=len(result.detections),
        out_path=out_path,
        time_ms=now_ms() - t0,
        detections=result.metadata(),
    )


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    settings = get_settings()
    ap = argparse.ArgumentParser(description="Letter translated text onto comic speech bubbles.")

    ap.add_argument("--input", nargs="+", required=True, help="Input files/dirs/globs, e.g. pages/**/*.png")
    ap.add_argument("--outdir", default=settings.OUTPUT_DIR, help="Output directory")
    ap.add_argument("--summary", default=None, help="Summary JSON path (default: <outdir>/summary.json)")

    ap.add_argument("--model", default=settings.DETECTOR_MODEL_PATH, help="Detector ONNX model path")
    ap.add_argument("--ocr-service", default=settings.DEFAULT_OCR_SERVICE,
                    choices=["tesseract", "google_vision", "rapid"], help="OCR engine")
    ap.add_argument("--translation-service", default=settings.DEFAULT_TRANSLATION_SERVICE,
                    choices=["deepl", "google", "gemini"], help="Translation service")
    ap.add_argument("--source-language", default=settings.SOURCE_LANGUAGE, help="Source language code or AUTO")
    ap.add_argument("--target-language", default=settings.TARGET_LANGUAGE, help="Target language code")
    ap.add_argument("--font", default=None, help="Font file used for lettering")
    ap.add_argument("--skip-existing", action="store_true", help="Skip if output already exists")
    ap.add_argument("--log-level", default=settings.LOG_LEVEL, help="DEBUG/INFO/WARNING/ERROR")

    args = ap.parse_args(argv)
    args.source_language = args.source_language.upper()
    args.target_language = args.target_language.upper()
    return args


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    settings = get_settings()
    setup_logging(args.log_level, settings.LOG_DIR)

    files = expand_inputs(args.input)
    if not files:
        print("No input images found.", file=sys.stderr)
        return 2

    os.makedirs(args.outdir, exist_ok=True)
    summary_path = args.summary or os.path.join(args.outdir, "summary.json")
    pipeline = build_pipeline(args, settings)

    results: List[FileResult] = []
    t_all = now_ms()
    total = len(files)
    for i, p in enumerate(files, start=1):
        print(f"[{i}/{total}] Processing: {p}")
        t0 = now_ms()
        out_path = output_path_for(p, args.outdir)

        if args.skip_existing and os.path.exists(out_path):
            fr = FileResult(path=p, status="skipped", reason="skip_existing", out_path=out_path)
            results.append(fr)
            print(f"  -> SKIP existing: {out_path}")
            continue

        try:
            fr = process_file(p, pipeline, args.outdir)
            print(f"  -> PROCESSED: {fr.reason}   time={fr.time_ms}ms")
            print(f"     out={fr.out_path}")
        except (OverlayError, OSError) as e:
            logger.error(f"Failed to process {p}: {e}")
            fr = FileResult(path=p, status="error", reason=str(e), time_ms=now_ms() - t0)
            print(f"  -> ERROR: {e}\n     time={fr.time_ms}ms")
        results.append(fr)

    summary = {
        "total": len(results),
        "processed": sum(1 for r in results if r.status == "processed"),
        "skipped": sum(1 for r in results if r.status == "skipped"),
        "errors": sum(1 for r in results if r.status == "error"),
        "ocr_service": pipeline.ocr.name(),
        "translation_service": pipeline.orchestrator.translator.name(),
        "source_language": args.source_language,
        "target_language": args.target_language,
        "elapsed_ms": now_ms() - t_all,
        "files": [asdict(r) for r in results],
    }
    with open(summary_path, "w", encoding="utf-8") as f:
        json.dump(summary, f, ensure_ascii=False, indent=2)

    print(json.dumps({k: summary[k] for k in ("total", "processed", "skipped", "errors")}, indent=2))
    print(f"Outdir: {os.path.abspath(args.outdir)}")
    print(f"Summary: {summary_path}")
    return 0 if summary["errors"] == 0 else 1


if __name__ == "__main__":
    sys.exit(main())
