"""
CUPS Coincidence Report
=======================

Cross-references every code-dictionary entry against the activity segments of
all loaded RIPS files and computes a frequency of use (FU):

    FU = total matches / population denominator    (0 when the denominator is 0)

Matching rules per segment:
- AC, AP, AU, AH, AN, AT: the service-code column (dictionary.ACTIVITY_CODE_COLUMNS)
  equals the entry's code or its current (superseding) code.
- US: no service column; the code must appear as a whole comma-delimited field
  anywhere in the line. This is a looser match than the column test.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import dictionary
from enrichment import population_for, representative_provider
from lookups import normalize_code, rows_to_records
from providers import AfProvider
from users import unique_document_numbers

logger = logging.getLogger(__name__)


@dataclass
class CupsEntry:
    """One row of the code dictionary"""
    cups: str
    cups_vigente: str
    nombre: str
    tipo_ser: str

    @property
    def codes(self) -> List[str]:
        """Distinct non-empty codes to match (primary first)"""
        codes = []
        for code in (self.cups, self.cups_vigente):
            if code and code not in codes:
                codes.append(code)
        return codes


@dataclass
class Coincidence:
    cups: str
    cups_vigente: str
    nombre: str
    tipo_ser: str
    coincidences: Dict[str, int] = field(default_factory=dict)
    total: int = 0
    fu: float = 0.0
    poblacion_para_fu: int = 0

    def to_dict(self):
        return {
            'cups': self.cups,
            'cupsVigente': self.cups_vigente,
            'nombre': self.nombre,
            'tipoSer': self.tipo_ser,
            'coincidences': dict(self.coincidences),
            'total': self.total,
            'fu': self.fu,
            'poblacionParaFU': self.poblacion_para_fu,
        }


@dataclass
class CoincidenceReport:
    prestadores: Dict[str, AfProvider]
    data: List[Coincidence]
    poblacion_total: int


def load_cups_dictionary(rows: Sequence[Sequence[Any]]) -> List[CupsEntry]:
    """
    Read code-dictionary rows (header first) into entries.

    Rows with neither a code nor a current code are dropped; file order is kept.
    """
    entries = []
    for record in rows_to_records(rows, dictionary.CUPS_HEADERS):
        cups = normalize_code(record['cups']) or ''
        vigente = normalize_code(record['cups_vigente']) or ''
        if not cups and not vigente:
            continue
        entries.append(CupsEntry(
            cups=cups,
            cups_vigente=vigente,
            nombre=str(record['nombre'] or '').strip(),
            tipo_ser=str(record['tipo_ser'] or '').strip(),
        ))
    logger.info("Loaded %d CUPS dictionary entries", len(entries))
    return entries


def line_has_code(line: str, segment: str, codes: Sequence[str]) -> bool:
    """True when an activity line references one of codes."""
    column = dictionary.get_code_column(segment)
    if column is not None:
        cols = line.split(',')
        if column >= len(cols):
            return False
        return normalize_code(cols[column]) in codes
    bounded = f",{line},"
    return any(f",{code}," in bounded for code in codes)


def count_matches(lines: Sequence[str], segment: str, codes: Sequence[str]) -> int:
    if not codes:
        return 0
    return sum(1 for line in lines if line_has_code(line, segment, codes))


def frequency_of_use(total: int, population: int) -> float:
    """total / population, 0.0 for a non-positive denominator"""
    if not population or population <= 0:
        return 0.0
    return total / population


def build_coincidence_report(entries: Sequence[CupsEntry],
                             segments: Dict[str, List[str]],
                             providers: Dict[str, AfProvider],
                             provider: Optional[AfProvider] = None) -> CoincidenceReport:
    """
    Build the coincidence table.

    Args:
        entries: Code dictionary entries (order is preserved in the report)
        segments: Union of the segment maps of all loaded files
        providers: Enriched provider map
        provider: Provider whose population is the denominator
                  (default: first provider with population data)

    Returns:
        CoincidenceReport
    """
    if provider is None:
        provider = representative_provider(providers)

    data = []
    for entry in entries:
        codes = entry.codes
        per_segment = {
            seg: count_matches(segments.get(seg, []), seg, codes)
            for seg in dictionary.ACTIVITY_SEGMENTS
        }
        total = sum(per_segment.values())
        population = population_for(provider, entry.tipo_ser)
        data.append(Coincidence(
            cups=entry.cups,
            cups_vigente=entry.cups_vigente,
            nombre=entry.nombre,
            tipo_ser=entry.tipo_ser,
            coincidences=per_segment,
            total=total,
            fu=frequency_of_use(total, population),
            poblacion_para_fu=population,
        ))

    poblacion_total = len(unique_document_numbers(segments.get('US', [])))
    logger.info("Coincidence report: %d codes, %d with matches, %d unique users",
                len(data), sum(1 for c in data if c.total), poblacion_total)
    return CoincidenceReport(prestadores=providers, data=data, poblacion_total=poblacion_total)
