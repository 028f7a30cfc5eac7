from decimal import Decimal

from openpyxl import load_workbook

from coincidence import CupsEntry, build_coincidence_report
from excel_export import export_af_summary, export_coincidence_report, safe_sheet_name
from providers import extract_af, merge_af_summaries
from validation import STATUS_FAIL, FileValidation, SegmentCheck


def af_line(valor, nombre='IPS INDIGENA KOTTUSHI'):
    return (f"440010095404,{nombre},NI,900794134,ACP170,05/05/2025,01/04/2025,30/04/2025,EPSI01,"
            f"DUSAKAWI EPSI,44847-08EB,ESPECIALIDADES,SUBSIDIADO,,0,0,{valor}")


def test_safe_sheet_name():
    assert safe_sheet_name('IPS [NORTE]: A/B') == 'IPS NORTE AB'
    assert len(safe_sheet_name('X' * 40)) == 31
    assert safe_sheet_name('') == 'Hoja'

    used = {'Consolidado'}
    assert safe_sheet_name('IPS', used) == 'IPS'
    assert safe_sheet_name('ips', used) == 'ips (2)'
    assert len(safe_sheet_name('Y' * 40, used)) == 31
    assert safe_sheet_name('Y' * 40, used).endswith(' (2)')


def test_af_summary_workbook(tmp_path):
    providers = merge_af_summaries([
        extract_af({'AF': [af_line(100)]}, 'a.txt'),
        extract_af({'AF': [af_line(250)]}, 'b.txt'),
    ])
    out = tmp_path / "Resumen_AF.xlsx"

    assert export_af_summary(providers, str(out)) == str(out)

    wb = load_workbook(str(out))
    assert wb.sheetnames == ['Consolidado', 'IPS INDIGENA KOTTUSHI']
    summary = wb['Consolidado']
    assert summary['A2'].value == 'IPS INDIGENA KOTTUSHI'
    assert summary['F2'].number_format == '$#,##0'
    assert summary.cell(row=summary.max_row, column=5).value == 'TOTAL GENERAL'
    assert Decimal(str(summary.cell(row=summary.max_row, column=6).value)) == Decimal('350')

    detail = wb['IPS INDIGENA KOTTUSHI']
    assert detail.cell(row=detail.max_row, column=1).value == 'TOTAL'
    assert detail['C8'].value == 'a.txt'


def test_af_summary_without_providers(tmp_path):
    out = tmp_path / "x.xlsx"
    assert export_af_summary({}, str(out)) is None
    assert not out.exists()


def test_coincidence_workbook(tmp_path):
    entry = CupsEntry(cups='890201', cups_vigente='', nombre='CONSULTA', tipo_ser='MEDICINA GENERAL')
    segments = {'AC': ["FAC1,1,CC,1,01/04/2025,AUT1,890201,10"], 'US': ['CC,1,x']}
    providers = extract_af({'AF': [af_line(100)]}, 'a.txt')
    report = build_coincidence_report([entry], segments, providers)
    validations = [FileValidation('a.txt', (SegmentCheck('AC', 2, 1, STATUS_FAIL),))]
    out = tmp_path / "out" / "Reporte_RIPS.xlsx"

    export_coincidence_report(report, str(out), validations)

    wb = load_workbook(str(out))
    assert wb.sheetnames == ['Coincidencias', 'Prestadores', 'Validacion']
    ws = wb['Coincidencias']
    header = [c.value for c in ws[1]]
    assert header[:4] == ['CUPS', 'CUPS VIGENTE', 'NOMBRE CUPS', 'Tipo Ser']
    assert header[-3:] == ['Total', 'Población FU', 'FU']
    row = [c.value for c in ws[2]]
    assert row[0] == '890201'
    assert row[header.index('AC')] == 1
    assert row[header.index('Total')] == 1
    assert ws.cell(row=ws.max_row, column=2).value == 1
    assert wb['Prestadores']['A2'].value == 'IPS INDIGENA KOTTUSHI'
    assert wb['Validacion']['E2'].value == 'Diferencia'


def test_coincidence_workbook_without_validation_sheet(tmp_path):
    report = build_coincidence_report([], {}, {})
    out = tmp_path / "r.xlsx"
    export_coincidence_report(report, str(out))
    assert load_workbook(str(out)).sheetnames == ['Coincidencias', 'Prestadores']
