"""
RIPS Count Validation
=====================

Reconciles the record counts a file declares in its CT (control) segment with
the number of lines actually parsed for each segment.

- expected: sum of CT counts per segment code (multi-page CT sections add up)
- found: number of lines per parsed segment, CT excluded
- result: one row per segment in either set, sorted by code, status 'ok' iff
  expected == found

A file without CT lines simply reports every found segment as 'fail'.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Tuple

import dictionary

STATUS_OK = 'ok'
STATUS_FAIL = 'fail'

_LEADING_INT_PATTERN = re.compile(r'^\s*([+-]?\d+)')


@dataclass(frozen=True)
class SegmentCheck:
    """Expected-vs-found comparison for one segment"""
    name: str
    expected: int
    found: int
    status: str

    def __str__(self):
        mark = 'OK' if self.status == STATUS_OK else 'FAIL'
        return f"[{mark}] {self.name}: expected {self.expected}, found {self.found}"

    def to_dict(self):
        return {
            'name': self.name,
            'expected': self.expected,
            'found': self.found,
            'status': self.status,
        }


@dataclass(frozen=True)
class FileValidation:
    """Validation outcome for one file"""
    file_name: str
    segments: Tuple[SegmentCheck, ...] = field(default_factory=tuple)

    @property
    def is_valid(self) -> bool:
        return bool(self.segments) and all(s.status == STATUS_OK for s in self.segments)

    @property
    def failures(self) -> List[SegmentCheck]:
        return [s for s in self.segments if s.status == STATUS_FAIL]

    def to_dict(self):
        return {
            'fileName': self.file_name,
            'segments': [s.to_dict() for s in self.segments],
        }


def parse_count(value: Optional[str]) -> Optional[int]:
    """Leading integer of a CT count cell ('5', ' 5', '5x' -> 5), else None"""
    match = _LEADING_INT_PATTERN.match(value or '')
    if not match:
        return None
    return int(match.group(1))


def expected_from_ct(segments: Dict[str, List[str]]) -> Dict[str, int]:
    """Declared record counts per segment code, summed across CT lines"""
    expected: Dict[str, int] = {}
    for row in segments.get('CT', []):
        cols = row.split(',')
        if len(cols) < dictionary.CT_MIN_COLUMNS:
            continue
        code = (cols[dictionary.CT_SEGMENT_COLUMN] or '')[:2].upper()
        count = parse_count(cols[dictionary.CT_COUNT_COLUMN])
        if count is None:
            continue
        expected[code] = expected.get(code, 0) + count
    return expected


def found_by_segment(segments: Dict[str, List[str]]) -> Dict[str, int]:
    """Parsed line count per segment, CT excluded"""
    return {seg: len(rows) for seg, rows in segments.items() if seg != 'CT'}


def compare_counts(expected: Dict[str, int], found: Dict[str, int]) -> Tuple[SegmentCheck, ...]:
    names = (set(expected) | set(found)) - {'CT'}
    checks = []
    for name in sorted(names):
        exp = expected.get(name, 0)
        enc = found.get(name, 0)
        checks.append(SegmentCheck(
            name=name,
            expected=exp,
            found=enc,
            status=STATUS_OK if exp == enc else STATUS_FAIL,
        ))
    return tuple(checks)


def validate_segments(segments: Dict[str, List[str]],
                      file_name: str = '') -> Tuple[Dict[str, int], Dict[str, int], FileValidation]:
    """
    Main validation entry point for one parsed file.

    Args:
        segments: Segment map from rips_parser.parse_rips()
        file_name: Name reported in the result

    Returns:
        (expected, found, FileValidation)
    """
    expected = expected_from_ct(segments)
    found = found_by_segment(segments)
    result = FileValidation(file_name=file_name, segments=compare_counts(expected, found))
    return expected, found, result


def generate_text_report(results: List[FileValidation], generated: Optional[datetime] = None) -> str:
    """Generate text format validation report"""
    generated = generated or datetime.now()
    failing = [r for r in results if not r.is_valid]

    lines = []
    lines.append("=" * 80)
    lines.append("RIPS VALIDATION REPORT")
    lines.append("=" * 80)
    lines.append(f"Generated: {generated.strftime('%Y-%m-%d %H:%M:%S')}")
    lines.append(f"Files validated: {len(results)}")
    lines.append(f"Files with differences: {len(failing)}")
    lines.append("")

    for result in results:
        lines.append("-" * 80)
        lines.append(f"File: {result.file_name}")
        lines.append("-" * 80)
        if not result.segments:
            lines.append("   No segments detected or no CT present.")
            lines.append("")
            continue
        lines.append(f"   {'Segment':<10}{'Description':<38}{'Expected':>10}{'Found':>10}  Status")
        for check in result.segments:
            description = dictionary.get_segment_description(check.name)[:36]
            status = 'OK' if check.status == STATUS_OK else 'DIFFERENCE'
            lines.append(
                f"   {check.name:<10}{description:<38}{check.expected:>10}{check.found:>10}  {status}"
            )
        lines.append("")

    lines.append("=" * 80)
    return "\n".join(lines)


def write_text_report(results: List[FileValidation], output_file: str) -> str:
    """Write the text report to output_file and return its content"""
    report_content = generate_text_report(results)
    with open(output_file, 'w', encoding='utf-8') as f:
        f.write(report_content)
    return report_content
