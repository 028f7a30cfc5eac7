"""
RIPS Parser and Batch Processor

Splits raw RIPS flat files into segments, validates declared counts, aggregates
AF provider data across files, enriches it with the auxiliary templates and
builds the CUPS coincidence report.

Segment detection has two independent strategies behind parse_rips():
- markers: ARCHIVO-RIPS-<CODE> lines toggle the current segment
- heuristics: only when no marker produced any segment, each line is classified
  by column count (CT / AF / US)
"""

import logging
import os
import re
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple
from zipfile import BadZipFile

from openpyxl.utils.exceptions import InvalidFileException

import dictionary
from coincidence import CoincidenceReport, CupsEntry, build_coincidence_report, load_cups_dictionary
from config import Config, get_config
from enrichment import enrich_providers
from error_analysis import AnalysisResult, Analyzer, analyze_file
from excel_export import export_af_summary, export_coincidence_report
from lookups import AuxiliarySource, read_workbook_rows
from providers import AfProvider, extract_af, merge_af_summaries, total_billed
from users import UserRecord, link_activities, rank_activities, rank_users, unique_users
from validation import FileValidation, validate_segments, write_text_report

logger = logging.getLogger(__name__)

_MARKER_PREFIX = 'ARCHIVO-RIPS-'
_MARKER_PATTERN = re.compile(r'ARCHIVO-RIPS-([A-Z]+)', re.IGNORECASE)
_SEGMENT_CODE_PATTERN = re.compile(r'^[A-Z]{2}')
_INTEGER_PATTERN = re.compile(r'^\s*\d+\s*$')
_COMMENT_PREFIX = '***'


def configure_logging(level=logging.INFO, log_file=None, simple_format=False):
    """
    Configure logging for the RIPS processor.

    Args:
        level: Logging level (logging.DEBUG, logging.INFO, etc.)
        log_file: Optional path to log file. If None, logs to console only.
        simple_format: If True, use simple format without timestamps.
    """
    if simple_format:
        formatter = logging.Formatter('%(message)s')
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(level)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root.addHandler(console_handler)

    if log_file:
        file_formatter = logging.Formatter(
            '%(asctime)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setFormatter(file_formatter)
        root.addHandler(file_handler)


# ============================================================
# SEGMENT PARSING
# ============================================================

def split_lines(text):
    """Trimmed lines of a file, carriage returns removed"""
    return [raw.strip() for raw in (text or '').replace('\r', '').split('\n')]


def strip_delimiter(line):
    """Drop one trailing '|' record delimiter"""
    return line[:-1] if line.endswith('|') else line


def parse_with_markers(text):
    """
    Marker strategy.

    ARCHIVO-RIPS-<CODE> opens <CODE>; the same marker again closes it. A
    different marker while a segment is open switches to the new segment.
    Data lines outside any segment, blank lines and '***' lines are dropped.

    Returns:
        Segment map (empty when the file has no markers)
    """
    segments = {}
    current = None

    for line in split_lines(text):
        if not line:
            continue

        if _MARKER_PREFIX in line.upper():
            match = _MARKER_PATTERN.search(line)
            if match:
                seg = match.group(1).upper()
                if current == seg:
                    current = None
                else:
                    current = seg
                    segments.setdefault(current, [])
            continue

        if current and not line.startswith(_COMMENT_PREFIX):
            segments[current].append(strip_delimiter(line))

    return segments


def _looks_like_control_line(cols, thresholds):
    if not (thresholds['ct_min_columns'] <= len(cols) < thresholds['us_min_columns']):
        return False
    if len(cols) <= dictionary.CT_COUNT_COLUMN:
        return False
    return (_SEGMENT_CODE_PATTERN.match(cols[dictionary.CT_SEGMENT_COLUMN].strip()) is not None
            and _INTEGER_PATTERN.match(cols[dictionary.CT_COUNT_COLUMN]) is not None)


def parse_with_heuristics(text, thresholds=None):
    """
    Heuristic strategy for files without markers.

    Per line (thresholds from dictionary.FALLBACK_THRESHOLDS unless given):
    - CT: at least ct_min_columns and fewer than us_min_columns columns,
      column 2 starts with two capital letters and column 3 is an integer
    - AF: at least af_min_columns columns
    - US: at least us_min_columns columns
    Anything else is dropped. The result is approximate by nature.
    """
    thresholds = {**dictionary.FALLBACK_THRESHOLDS, **(thresholds or {})}
    segments = {}

    for line in split_lines(text):
        if not line or line.startswith(_COMMENT_PREFIX):
            continue
        line = strip_delimiter(line)
        cols = line.split(',')

        if _looks_like_control_line(cols, thresholds):
            seg = 'CT'
        elif len(cols) >= thresholds['af_min_columns']:
            seg = 'AF'
        elif len(cols) >= thresholds['us_min_columns']:
            seg = 'US'
        else:
            continue
        segments.setdefault(seg, []).append(line)

    return segments


def parse_rips(text, thresholds=None):
    """
    Parse raw RIPS text into segments.

    Falls back to parse_with_heuristics() only when the marker strategy
    produced no segment at all. Never raises for malformed input.

    Args:
        text: Raw file content
        thresholds: Optional overrides for the heuristic column counts

    Returns:
        Dict of segment code -> list of record lines, in file order
    """
    segments = parse_with_markers(text)
    if segments:
        return segments
    logger.debug("No ARCHIVO-RIPS markers found, using column heuristics")
    return parse_with_heuristics(text, thresholds)


def merge_segment_maps(maps):
    """Union of several segment maps; lines are concatenated in the given order"""
    merged = {}
    for segments in maps:
        for seg, rows in segments.items():
            merged.setdefault(seg, []).extend(rows)
    return merged


def read_rips_file(file_path, encoding='utf-8'):
    """
    Read a RIPS file as text.

    Files that are not valid in the configured encoding are re-read as latin-1,
    the usual encoding of RIPS exports.
    """
    try:
        with open(file_path, 'r', encoding=encoding) as f:
            return f.read()
    except UnicodeDecodeError:
        logger.debug("%s is not %s, reading as latin-1", os.path.basename(file_path), encoding)
        with open(file_path, 'r', encoding='latin-1') as f:
            return f.read()


# ============================================================
# BATCH PROCESSING
# ============================================================

@dataclass
class BatchResult:
    """Outcome of processing a set of files in a fixed order"""
    validations: List[FileValidation] = field(default_factory=list)
    providers: Dict[str, AfProvider] = field(default_factory=dict)
    segments: Dict[str, List[str]] = field(default_factory=dict)
    file_contents: Dict[str, str] = field(default_factory=dict)
    skipped_files: List[Tuple[str, str]] = field(default_factory=list)

    @property
    def failing_files(self) -> List[FileValidation]:
        return [v for v in self.validations if not v.is_valid]


class RipsProcessor:
    """
    Holds the lookup state for one processing run (auxiliary templates and
    code dictionary) and runs the parse / validate / aggregate / report steps.
    """

    def __init__(self, config: Optional[Config] = None):
        self.config = config or get_config()
        self.sources: List[AuxiliarySource] = []
        self.cups_entries: List[CupsEntry] = []

    def load_auxiliary_source(self, name: str, path: Optional[str]) -> bool:
        """
        Load and index one auxiliary template.

        Sources are consulted in load order, so load the primary one first.

        Returns:
            True if the template was loaded, False otherwise.
        """
        if path is None:
            logger.info("%s template not configured (enrichment skipped)", name)
            return False
        if not os.path.exists(path):
            logger.info("%s template not found: %s (enrichment skipped)", name, path)
            return False
        try:
            rows = read_workbook_rows(path)
        except (OSError, ValueError, KeyError, BadZipFile, InvalidFileException) as e:
            logger.warning("Failed to load %s template %s: %s", name, path, e)
            return False
        self.sources.append(AuxiliarySource.from_rows(name, rows))
        return True

    def load_cups_dictionary(self, path: Optional[str] = None) -> bool:
        """Load the CUPS code dictionary workbook"""
        if path is None:
            path = self.config.cups_dictionary_path
        if path is None:
            logger.info("CUPS dictionary not configured (coincidence report skipped)")
            return False
        if not os.path.exists(path):
            logger.info("CUPS dictionary not found: %s", path)
            return False
        try:
            rows = read_workbook_rows(path)
        except (OSError, ValueError, KeyError, BadZipFile, InvalidFileException) as e:
            logger.warning("Failed to load CUPS dictionary %s: %s", path, e)
            return False
        self.cups_entries = load_cups_dictionary(rows)
        return True

    def process_texts(self, named_texts: Sequence[Tuple[str, str]]) -> BatchResult:
        """
        Parse, validate and aggregate files in the given order.

        Args:
            named_texts: (file name, raw text) pairs

        Returns:
            BatchResult with per-file validation, merged providers and the
            union of all segments
        """
        thresholds = self.config.fallback_thresholds
        batch = BatchResult()
        partials = []
        segment_maps = []

        for file_name, text in named_texts:
            segments = parse_rips(text, thresholds)
            _, _, result = validate_segments(segments, file_name)
            batch.validations.append(result)
            batch.file_contents[file_name] = text
            partials.append(extract_af(segments, file_name))
            segment_maps.append(segments)

            status = 'OK' if result.is_valid else f"{len(result.failures)} difference(s)"
            logger.info("  %s: %d segment(s), %s", file_name, len(segments), status)

        batch.providers = merge_af_summaries(partials)
        batch.segments = merge_segment_maps(segment_maps)
        return batch

    def process_files(self, file_paths: Sequence[str]) -> BatchResult:
        """Read files (unreadable ones are skipped and reported) and process them"""
        encoding = self.config.get('file_encoding', 'utf-8')
        named_texts = []
        skipped = []
        for path in file_paths:
            try:
                named_texts.append((os.path.basename(path), read_rips_file(path, encoding)))
            except OSError as e:
                skipped.append((path, f"Could not read: {e}"))
                logger.warning("Skipping %s: %s", path, e)

        batch = self.process_texts(named_texts)
        batch.skipped_files.extend(skipped)
        return batch

    def build_report(self, batch: BatchResult) -> CoincidenceReport:
        """Enrich the merged providers and cross-reference the code dictionary"""
        enriched = enrich_providers(batch.providers, self.sources)
        return build_coincidence_report(self.cups_entries, batch.segments, enriched)

    def analyze_users(self, batch: BatchResult) -> List[UserRecord]:
        """Unique users of all files with their activities linked"""
        users = unique_users(batch.segments.get('US', []))
        descriptions = {}
        for entry in self.cups_entries:
            for code in entry.codes:
                descriptions.setdefault(code, entry.nombre)
        linked = link_activities(users, batch.segments, descriptions)
        logger.info("Users: %d unique, %d activities linked", len(users), linked)
        return users

    def explain_failures(self, batch: BatchResult,
                         analyzer: Analyzer) -> Dict[str, Dict[str, Optional[AnalysisResult]]]:
        """
        Run the error analyzer over every file with count differences.

        Returns:
            file name -> segment -> AnalysisResult (None where the analyzer failed)
        """
        analyses = {}
        for result in batch.failing_files:
            if not result.failures:
                continue
            analyses[result.file_name] = analyze_file(
                result, batch.file_contents.get(result.file_name, ''), analyzer)
        return analyses


def find_rips_files(folder: Path, extensions: Sequence[str]) -> List[str]:
    """RIPS candidate files of a folder, sorted by name (case-insensitive extensions)"""
    valid = {ext.lower() for ext in extensions}
    return sorted(str(f) for f in folder.iterdir() if f.is_file() and f.suffix.lower() in valid)


def process_folder(folder_path, output_dir=None, cups_path=None, asiste_path=None,
                   especialidades_path=None, config=None, analyzer=None, top=5):
    """
    Process every RIPS file in a folder and write the reports.

    Args:
        folder_path: Folder with RIPS files
        output_dir: Where reports go (default: folder_path)
        cups_path, asiste_path, especialidades_path: Override configured paths
        analyzer: Optional error explainer called for each failing segment
        top: Number of codes and users listed in the run summary

    Returns:
        Dict with the batch, the coincidence report, users and their rankings,
        error analyses and written paths,
        or None when the folder has no RIPS files
    """
    config = config or get_config()
    folder = Path(folder_path)
    if not folder.is_dir():
        logger.error("Folder does not exist: %s", folder_path)
        return None

    try:
        files = find_rips_files(folder, config.get('rips_file_extensions', ['.txt']))
    except OSError as e:
        logger.error("Error reading folder %s: %s", folder_path, e)
        return None
    if not files:
        logger.warning("No RIPS files found in %s", folder_path)
        return None
    logger.info("Found %d RIPS file(s) to process", len(files))

    processor = RipsProcessor(config)
    processor.load_auxiliary_source('Especialidades', especialidades_path or config.especialidades_xlsx_path)
    processor.load_auxiliary_source('Asiste-EspeB', asiste_path or config.asiste_xlsx_path)
    processor.load_cups_dictionary(cups_path)

    batch = processor.process_files(files)

    out = Path(output_dir) if output_dir else folder
    out.mkdir(parents=True, exist_ok=True)
    outputs = {}

    report_txt = out / config.get('validation_report_txt_name', 'rips_validation_report.txt')
    write_text_report(batch.validations, str(report_txt))
    outputs['validation_report'] = str(report_txt)

    af_path = export_af_summary(batch.providers, str(out / config.get('af_summary_xlsx_name', 'Resumen_AF.xlsx')))
    if af_path:
        outputs['af_summary'] = af_path

    report = processor.build_report(batch)
    if processor.cups_entries:
        outputs['coincidence_report'] = export_coincidence_report(
            report, str(out / config.get('output_xlsx_name', 'Reporte_RIPS.xlsx')), batch.validations)

    users = processor.analyze_users(batch)
    activity_ranking = rank_activities(users)
    user_ranking = rank_users(users)
    analyses = processor.explain_failures(batch, analyzer) if analyzer else {}

    logger.info("=" * 80)
    logger.info("Files processed: %d (%d with differences, %d skipped)",
                len(batch.validations), len(batch.failing_files), len(batch.skipped_files))
    logger.info("Providers: %d, total billed: %s", len(batch.providers), total_billed(batch.providers))
    logger.info("Unique users: %d", len(users))
    for item in activity_ranking[:top]:
        logger.info("  %s %s: %d", item.cups, item.description, item.count)
    for item in user_ranking[:top]:
        logger.info("  %s %s: %d activities", item.user.num_doc, item.user.nombre_completo, item.count)
    if analyses:
        logger.info("Error analyses: %d file(s)", len(analyses))
    for name, path in outputs.items():
        logger.info("  %s: %s", name, path)
    logger.info("=" * 80)

    return {
        'batch': batch,
        'report': report,
        'users': users,
        'activity_ranking': activity_ranking,
        'user_ranking': user_ranking,
        'analyses': analyses,
        'outputs': outputs,
    }


def main(argv=None):
    """Command-line entry point"""
    import argparse
    parser = argparse.ArgumentParser(description='RIPS validator and CUPS coincidence report')
    parser.add_argument('folder', help='Folder containing RIPS files')
    parser.add_argument('--cups', help='CUPS dictionary workbook (.xlsx)')
    parser.add_argument('--asiste', help='Asiste-EspeB template (.xlsx)')
    parser.add_argument('--especialidades', help='Especialidades template (.xlsx)')
    parser.add_argument('-o', '--output-dir', help='Output folder (default: input folder)')
    parser.add_argument('-c', '--config', help='JSON configuration file')
    parser.add_argument('-v', '--verbose', action='store_true', help='Enable verbose (DEBUG) logging')
    args = parser.parse_args(argv)

    config = get_config(args.config, reload=bool(args.config))
    level = logging.DEBUG if args.verbose else getattr(logging, str(config.get('log_level', 'INFO')).upper(), logging.INFO)
    configure_logging(level=level, log_file=config.get('log_file'),
                      simple_format=config.get('simple_log_format', False))

    result = process_folder(args.folder, output_dir=args.output_dir, cups_path=args.cups,
                            asiste_path=args.asiste, especialidades_path=args.especialidades,
                            config=config)
    return 0 if result is not None else 1


if __name__ == '__main__':
    sys.exit(main())
