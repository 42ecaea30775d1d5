"""
Batch archive processor — ZIP archives of DXF drawings → ProcessingResult.

Each ``*.dxf`` member is decoded, parsed and run through the extraction
tiers on its own. A member that fails is recorded as a filename-tagged error
and the batch moves on; one corrupt drawing never aborts an upload. Results
are folded from per-file outcomes into a single immutable ProcessingResult.

Error strings:
  "Failed to parse: <file>"           text is not usable DXF
  "Error processing <file>: <detail>" decompression/decoding/extraction raised
  "No cabinets found: <file>"         valid DXF, nothing passed any tier (still processed)
  "ZIP processing error: <detail>"    the archive itself is unreadable
"""
import io
import functools
import time
import logging
import threading
import zipfile
from dataclasses import dataclass
from typing import Iterable, Iterator, Optional

from cabinet_ingest import config
from cabinet_ingest.models.cabinet_schema import ExtractedCabinetData, ProcessingResult
from cabinet_ingest.models.drawing import ParseFailure
from cabinet_ingest.services.dxf_parser import parse_dxf_content
from cabinet_ingest.services.extraction_engine import CabinetExtractionEngine
from cabinet_ingest.services.perf_monitor import BatchStatsTracker, timed, tracker

logger = logging.getLogger("cabinet-ingest.batch")


@dataclass(frozen=True)
class FileOutcome:
    """Everything one member contributes to the batch."""
    filename: str
    cabinets: tuple[ExtractedCabinetData, ...] = ()
    errors: tuple[str, ...] = ()
    processed: bool = False
    tier: Optional[str] = None


def _as_result(outcome: FileOutcome) -> ProcessingResult:
    return ProcessingResult(
        cabinets=list(outcome.cabinets),
        errors=list(outcome.errors),
        processed_files=1 if outcome.processed else 0,
    )


def fold_outcomes(outcomes: Iterable[FileOutcome], total_files: int) -> ProcessingResult:
    """Reduce per-file outcomes into one ProcessingResult."""
    folded = functools.reduce(ProcessingResult.merge, map(_as_result, outcomes), ProcessingResult())
    return folded.model_copy(update={"total_files": total_files})


def _is_dxf_member(info: zipfile.ZipInfo) -> bool:
    if info.is_dir():
        return False
    if info.filename.startswith(config.IGNORED_ARCHIVE_PREFIXES):
        return False
    return info.filename.lower().endswith(config.DXF_EXTENSION)


class BatchProcessor:
    """
    Runs the parse → extract pipeline over archives with per-file isolation.

    Processing is sequential; there is no shared mutable state between files
    apart from the (thread-safe) stats tracker. A ``threading.Event`` passed
    as ``cancel_event`` is checked between files, never mid-file.
    """

    def __init__(
        self,
        engine: Optional[CabinetExtractionEngine] = None,
        stats: Optional[BatchStatsTracker] = None,
    ) -> None:
        self.engine = engine or CabinetExtractionEngine()
        self.stats = stats if stats is not None else tracker

    # ------------------------------------------------------------------
    # Single drawing
    # ------------------------------------------------------------------

    def process_dxf_file(self, filename: str, content: str) -> FileOutcome:
        """Parse and extract one drawing. Never raises."""
        start = time.perf_counter()
        outcome = self._run_pipeline(filename, content)
        duration_ms = round((time.perf_counter() - start) * 1000, 2)
        self.stats.record_file(
            filename, duration_ms, outcome.processed,
            tier=outcome.tier, cabinet_count=len(outcome.cabinets),
        )
        for _ in outcome.errors:
            self.stats.record_error()
        return outcome

    def _run_pipeline(self, filename: str, content: str) -> FileOutcome:
        try:
            parsed = parse_dxf_content(content, default_units=self.engine.default_units)
            if isinstance(parsed, ParseFailure):
                logger.warning(
                    f"Failed to parse {filename}: {parsed.reason}",
                    extra={"source_file": filename},
                )
                return FileOutcome(filename=filename, errors=(f"Failed to parse: {filename}",))

            result = self.engine.extract(parsed, filename)
        except Exception as e:
            logger.error(f"Error processing {filename}: {e}", exc_info=True,
                         extra={"source_file": filename})
            return FileOutcome(filename=filename, errors=(f"Error processing {filename}: {e}",))

        if not result.cabinets:
            logger.info(f"No cabinets found in {filename}", extra={"source_file": filename})
            return FileOutcome(
                filename=filename,
                errors=(f"No cabinets found: {filename}",),
                processed=True,
            )
        return FileOutcome(
            filename=filename,
            cabinets=result.cabinets,
            processed=True,
            tier=result.tier,
        )

    def process_dxf_files(self, files: Iterable[tuple[str, str]],
                          cancel_event: Optional[threading.Event] = None) -> ProcessingResult:
        """Batch of individually supplied drawings: ``[(filename, dxf_text), ...]``."""
        files = list(files)

        def outcomes() -> Iterator[FileOutcome]:
            for i, (filename, content) in enumerate(files):
                if cancel_event is not None and cancel_event.is_set():
                    yield self._cancelled(len(files) - i)
                    return
                yield self.process_dxf_file(filename, content)

        result = fold_outcomes(outcomes(), total_files=len(files))
        self.stats.record_batch_complete()
        return result

    # ------------------------------------------------------------------
    # Archives
    # ------------------------------------------------------------------

    def _process_member(self, zf: zipfile.ZipFile, info: zipfile.ZipInfo) -> FileOutcome:
        name = info.filename
        try:
            content = zf.read(info).decode(config.ARCHIVE_TEXT_ENCODING, errors="replace")
        except Exception as e:
            logger.error(f"Error reading {name} from archive: {e}", extra={"source_file": name})
            self.stats.record_file(name, 0.0, processed=False)
            self.stats.record_error()
            return FileOutcome(filename=name, errors=(f"Error processing {name}: {e}",))
        return self.process_dxf_file(name, content)

    def _cancelled(self, skipped: int) -> FileOutcome:
        logger.warning(f"Processing cancelled, {skipped} file(s) skipped")
        return FileOutcome(filename="", errors=(f"Processing cancelled: {skipped} file(s) skipped",))

    @timed
    def process_zip(self, data: bytes,
                    cancel_event: Optional[threading.Event] = None) -> ProcessingResult:
        """
        Process one ZIP archive of DXF drawings.

        Args:
            data: Archive bytes.
            cancel_event: Optional signal checked before each member.

        Returns:
            ProcessingResult; ``success`` is True when at least one member was processed.
        """
        try:
            zf = zipfile.ZipFile(io.BytesIO(data))
        except (zipfile.BadZipFile, zipfile.LargeZipFile) as e:
            logger.warning(f"ZIP processing error: {e}")
            return ProcessingResult(errors=[f"ZIP processing error: {e}"])

        with zf:
            members = [info for info in zf.infolist() if _is_dxf_member(info)]

            def outcomes() -> Iterator[FileOutcome]:
                for i, info in enumerate(members):
                    if cancel_event is not None and cancel_event.is_set():
                        yield self._cancelled(len(members) - i)
                        return
                    yield self._process_member(zf, info)

            result = fold_outcomes(outcomes(), total_files=len(members))

        self.stats.record_batch_complete()
        logger.info(
            f"ZIP processed: {result.processed_files}/{result.total_files} files, "
            f"{len(result.cabinets)} cabinets, {len(result.errors)} errors"
        )
        return result

    def process_archives(self, archives: Iterable[tuple[str, bytes]],
                         cancel_event: Optional[threading.Event] = None) -> ProcessingResult:
        """
        Process several named archives and concatenate their results.

        Each archive's errors are prefixed with ``[<archive name>] ``. Once
        ``cancel_event`` is set, every later archive is still opened so its
        skipped members count toward ``total_files``.
        """
        combined = ProcessingResult()
        for name, data in archives:
            logger.info(f"Processing archive {name}", extra={"archive": name})
            result = self.process_zip(data, cancel_event=cancel_event)
            combined = combined.merge(result, error_prefix=f"[{name}] ")
        return combined
