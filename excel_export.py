"""
Excel Export

Writes the AF provider summary and the CUPS coincidence report to .xlsx
workbooks with openpyxl.

AF summary workbook:
- 'Consolidado': one row per provider plus a TOTAL GENERAL row
- one sheet per provider with its billing periods and a TOTAL row

Coincidence workbook:
- 'Coincidencias': code, current code, description, service type, one column
  per activity segment, total, population used and FU (4 decimals)
- 'Prestadores': enrichment fields per provider
- 'Validacion': per-file segment counts (only when results are given)
"""

import logging
import re
from decimal import Decimal
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from openpyxl import Workbook
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter

import dictionary
from coincidence import CoincidenceReport
from enrichment import enrichment_summary
from providers import AfProvider, total_billed
from validation import STATUS_OK, FileValidation

logger = logging.getLogger(__name__)

CURRENCY_FORMAT = '$#,##0'
FU_FORMAT = '0.0000'
MAX_SHEET_NAME = 31

_INVALID_SHEET_CHARS = re.compile(r'[/\\?*\[\]:]')


def safe_sheet_name(name: str, used: Optional[set] = None) -> str:
    """
    Excel-safe, unique sheet name: forbidden characters removed, max 31 chars.

    Args:
        name: Desired name
        used: Names already taken in the workbook (updated in place)
    """
    base = _INVALID_SHEET_CHARS.sub('', name or '').strip()[:MAX_SHEET_NAME] or 'Hoja'
    if used is None:
        return base
    candidate = base
    n = 2
    while candidate.lower() in {u.lower() for u in used}:
        suffix = f" ({n})"
        candidate = base[:MAX_SHEET_NAME - len(suffix)] + suffix
        n += 1
    used.add(candidate)
    return candidate


def _set_widths(ws, widths: Sequence[int]):
    for idx, width in enumerate(widths, 1):
        ws.column_dimensions[get_column_letter(idx)].width = width


def _bold_row(ws, row: int):
    for cell in ws[row]:
        cell.font = Font(bold=True)


def _format_column(ws, col: int, number_format: str, first_row: int = 2):
    for (cell,) in ws.iter_rows(min_row=first_row, min_col=col, max_col=col):
        if isinstance(cell.value, (int, float, Decimal)) and not isinstance(cell.value, bool):
            cell.number_format = number_format


def _write_consolidated(wb: Workbook, providers: Dict[str, AfProvider]):
    ws = wb.active
    ws.title = 'Consolidado'
    ws.append(["Nombre del prestador", "NI", "Contrato", "Tipo de servicio", "Régimen", "Valor LMA Total"])
    for af in providers.values():
        ws.append([af.nombre_prestador, af.ni, af.contrato, af.tipo_servicio, af.regimen, af.valor_total])
    ws.append([])
    ws.append(["", "", "", "", "TOTAL GENERAL", total_billed(providers)])

    _bold_row(ws, 1)
    _bold_row(ws, ws.max_row)
    _set_widths(ws, [40, 15, 20, 20, 15, 20])
    _format_column(ws, 6, CURRENCY_FORMAT)
    ws.freeze_panes = 'A2'


def _write_provider_sheet(wb: Workbook, af: AfProvider, used: set):
    ws = wb.create_sheet(safe_sheet_name(af.nombre_prestador, used))
    ws.append(["Nombre del prestador", af.nombre_prestador])
    ws.append(["NI", af.ni])
    ws.append(["Número de contrato", af.contrato])
    ws.append(["Tipo de servicio", af.tipo_servicio])
    ws.append(["Régimen", af.regimen])
    ws.append([])
    ws.append(["Periodo", "Valor LMA", "Archivo origen"])
    header_row = ws.max_row
    for detail in af.detalles:
        ws.append([detail.periodo, detail.valor, detail.archivo])
    ws.append([])
    ws.append(["TOTAL", af.valor_total])

    _bold_row(ws, header_row)
    _bold_row(ws, ws.max_row)
    _set_widths(ws, [30, 40, 30])
    _format_column(ws, 2, CURRENCY_FORMAT, first_row=header_row + 1)


def export_af_summary(providers: Dict[str, AfProvider], output_path: str) -> Optional[str]:
    """
    Write the AF summary workbook.

    Returns:
        Output path, or None when there is nothing to export
    """
    if not providers:
        logger.warning("No AF data to export")
        return None

    wb = Workbook()
    _write_consolidated(wb, providers)
    used = {'Consolidado'}
    for af in providers.values():
        _write_provider_sheet(wb, af, used)

    Path(output_path).parent.mkdir(parents=True, exist_ok=True)
    wb.save(output_path)
    logger.info("AF summary saved to: %s (%d providers)", output_path, len(providers))
    return str(output_path)


def _write_coincidences(wb: Workbook, report: CoincidenceReport):
    ws = wb.active
    ws.title = 'Coincidencias'
    segments = list(dictionary.ACTIVITY_SEGMENTS)
    ws.append(["CUPS", "CUPS VIGENTE", "NOMBRE CUPS", "Tipo Ser"] + segments
              + ["Total", "Población FU", "FU"])
    for item in report.data:
        ws.append([item.cups, item.cups_vigente, item.nombre, item.tipo_ser]
                  + [item.coincidences.get(seg, 0) for seg in segments]
                  + [item.total, item.poblacion_para_fu, item.fu])
    ws.append([])
    ws.append(["Población total (usuarios únicos)", report.poblacion_total])

    fu_col = 4 + len(segments) + 3
    _bold_row(ws, 1)
    _set_widths(ws, [12, 14, 50, 25] + [8] * len(segments) + [10, 14, 10])
    _format_column(ws, fu_col, FU_FORMAT)
    ws.freeze_panes = 'A2'


def _write_providers(wb: Workbook, providers: Dict[str, AfProvider]):
    ws = wb.create_sheet('Prestadores')
    ws.append(["Nombre del prestador", "NI", "Contrato", "Régimen", "Departamento",
               "Municipio", "Valor contrato", "Población", "Valor LMA Total", "Fuente"])
    for row in enrichment_summary(providers):
        ws.append([row['nombrePrestador'], row['NI'], row['contrato'], row['regimen'],
                   row['departamento'], row['municipio'], row['valorPorContrato'],
                   row['poblacion'], row['valorTotal'], row['fuente']])
    _bold_row(ws, 1)
    _set_widths(ws, [40, 15, 20, 15, 20, 20, 18, 12, 18, 18])
    _format_column(ws, 7, CURRENCY_FORMAT)
    _format_column(ws, 9, CURRENCY_FORMAT)


def _write_validation(wb: Workbook, results: List[FileValidation]):
    ws = wb.create_sheet('Validacion')
    ws.append(["Archivo", "Segmento", "Esperados (CT)", "Encontrados", "Estado"])
    for result in results:
        for check in result.segments:
            status = 'Correcto' if check.status == STATUS_OK else 'Diferencia'
            ws.append([result.file_name, check.name, check.expected, check.found, status])
    _bold_row(ws, 1)
    _set_widths(ws, [40, 10, 15, 15, 12])


def export_coincidence_report(report: CoincidenceReport, output_path: str,
                              validation_results: Optional[List[FileValidation]] = None) -> str:
    """Write the coincidence workbook and return its path"""
    wb = Workbook()
    _write_coincidences(wb, report)
    _write_providers(wb, report.prestadores)
    if validation_results:
        _write_validation(wb, validation_results)

    Path(output_path).parent.mkdir(parents=True, exist_ok=True)
    wb.save(output_path)
    logger.info("Coincidence report saved to: %s (%d codes)", output_path, len(report.data))
    return str(output_path)
