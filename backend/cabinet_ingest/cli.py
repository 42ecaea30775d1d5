"""
Command-line entry point: extract cabinet records from DXF files and ZIP archives.

Usage:
    cabinet-ingest kitchen_units.zip                 # JSON result on stdout
    cabinet-ingest a.zip b.zip loose_unit.dxf -o out.json
    cabinet-ingest units.zip --units imperial --text-logs --log-level DEBUG

Exit status is 0 when at least one file was processed, 1 otherwise.
"""
import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Optional, Sequence

from cabinet_ingest import __version__, config
from cabinet_ingest.models.cabinet_schema import ProcessingResult
from cabinet_ingest.services.batch_processor import BatchProcessor
from cabinet_ingest.services.extraction_engine import CabinetExtractionEngine
from cabinet_ingest.services.logging_config import setup_logging

logger = logging.getLogger("cabinet-ingest")


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="cabinet-ingest",
        description="Extract catalog cabinet records from DXF drawings and ZIP archives of them.",
    )
    ap.add_argument("paths", nargs="+", type=Path, help=".zip or .dxf files")
    ap.add_argument("-o", "--output", type=Path, default=None,
                    help="write JSON here instead of stdout")
    ap.add_argument("--units", choices=["metric", "imperial"], default=config.DEFAULT_UNITS,
                    help="units assumed when a drawing has no units header")
    ap.add_argument("--min-dimension", type=float, default=config.MIN_CABINET_DIMENSION_MM,
                    help="reject candidates narrower/shorter than this (mm)")
    ap.add_argument("--unknown-entities", choices=list(config.UNKNOWN_ENTITY_POLICIES),
                    default=config.UNKNOWN_ENTITY_POLICY,
                    help="'origin' counts unmodelled entities as a point at (0,0)")
    ap.add_argument("--log-level", default=os.getenv("LOG_LEVEL", "WARNING"))
    ap.add_argument("--text-logs", action="store_true",
                    default=os.getenv("LOG_FORMAT", "json").lower() == "text")
    ap.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return ap


def run(paths: Sequence[Path], processor: BatchProcessor) -> ProcessingResult:
    """Archives go through the ZIP path, loose drawings through the single-file path."""
    archives = []
    drawings = []
    missing = []
    for path in paths:
        if not path.is_file():
            missing.append(f"File not found: {path}")
        elif path.suffix.lower() == ".zip":
            archives.append((path.name, path.read_bytes()))
        elif path.suffix.lower() == config.DXF_EXTENSION:
            drawings.append((path.name, path.read_text(encoding="utf-8", errors="replace")))
        else:
            missing.append(f"Unsupported file format: {path.suffix or path.name}")

    result = ProcessingResult(errors=missing)
    if archives:
        result = result.merge(processor.process_archives(archives))
    if drawings:
        result = result.merge(processor.process_dxf_files(drawings))
    return result


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(level=args.log_level, json_output=not args.text_logs)

    engine = CabinetExtractionEngine(settings={
        "default_units": args.units,
        "min_dimension_mm": args.min_dimension,
        "unknown_entity_policy": args.unknown_entities,
    })
    result = run(args.paths, BatchProcessor(engine=engine))

    payload = result.model_dump_json(by_alias=True, indent=2)
    if args.output:
        args.output.write_text(payload + "\n", encoding="utf-8")
        logger.info(f"Wrote {len(result.cabinets)} cabinets to {args.output}")
    else:
        sys.stdout.write(payload + "\n")
    return 0 if result.success else 1


if __name__ == "__main__":
    sys.exit(main())
