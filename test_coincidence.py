from coincidence import (
    CupsEntry,
    build_coincidence_report,
    count_matches,
    frequency_of_use,
    line_has_code,
    load_cups_dictionary,
)
from providers import AfProvider


def ac_line(code, doc='1'):
    return f"FAC1,440010095404,CC,{doc},01/04/2025,AUT1,{code},10,1,Z000,,,,1,0,0"


def ap_line(code, doc='1'):
    return f"FAC1,440010095404,CC,{doc},01/04/2025,AUT1,1,{code},1,Z000,,,,1"


def make_provider(poblacion):
    provider = AfProvider('IPS', '900', 'C1', 'ESPECIALIDADES', 'SUBSIDIADO')
    provider.poblacion = poblacion
    return provider


def test_counts_code_column_per_segment():
    entry = CupsEntry(cups='890201', cups_vigente='', nombre='CONSULTA', tipo_ser='MEDICINA GENERAL')
    segments = {'AC': [ac_line('890201')] * 4 + [ac_line('890202')]}

    report = build_coincidence_report([entry], segments, {'k': make_provider(200)})

    (item,) = report.data
    assert item.coincidences['AC'] == 4
    assert item.total == 4
    assert set(item.coincidences) == {'AP', 'AC', 'AT', 'AN', 'AH', 'AU', 'US'}
    assert item.poblacion_para_fu == 200
    assert item.fu == 0.02


def test_current_code_also_matches_once_per_line():
    entry = CupsEntry(cups='890201', cups_vigente='890301', nombre='', tipo_ser='')
    lines = [ac_line('890201'), ac_line('890301'), ac_line('999999')]
    assert count_matches(lines, 'AC', entry.codes) == 2


def test_code_in_other_column_does_not_match_column_segments():
    line = ac_line('111111', doc='890201')
    assert not line_has_code(line, 'AC', ['890201'])
    assert line_has_code(ap_line('890201'), 'AP', ['890201'])
    assert not line_has_code('short,line', 'AH', ['890201'])


def test_us_matches_whole_delimited_fields_only():
    assert line_has_code('CC,890201,X', 'US', ['890201'])
    assert line_has_code('890201,X', 'US', ['890201'])
    assert line_has_code('X,890201', 'US', ['890201'])
    assert not line_has_code('CC,8902011,X', 'US', ['890201'])


def test_zero_population_gives_zero_frequency():
    entry = CupsEntry(cups='890201', cups_vigente='', nombre='', tipo_ser='MEDICINA GENERAL')
    segments = {'AC': [ac_line('890201')]}

    (item,) = build_coincidence_report([entry], segments, {'k': make_provider(0)}).data

    assert item.total == 1
    assert item.fu == 0.0
    assert frequency_of_use(5, 0) == 0.0
    assert frequency_of_use(5, None) == 0.0


def test_report_without_providers_or_segments():
    entry = CupsEntry(cups='890201', cups_vigente='', nombre='', tipo_ser='')
    report = build_coincidence_report([entry], {}, {})
    assert report.data[0].total == 0
    assert report.data[0].fu == 0.0
    assert report.poblacion_total == 0


def test_population_total_counts_distinct_users():
    segments = {'US': ['CC,1,x', 'CC,2,x', 'TI,1,x', 'bad']}
    report = build_coincidence_report([], segments, {})
    assert report.poblacion_total == 2
    assert report.data == []


def test_explicit_provider_sets_denominator():
    entry = CupsEntry(cups='890201', cups_vigente='', nombre='', tipo_ser='ODONTOLOGIA')
    chosen = make_provider(50)
    report = build_coincidence_report([entry], {}, {'k': make_provider(200)}, provider=chosen)
    assert report.data[0].poblacion_para_fu == 50


def test_load_cups_dictionary():
    rows = [
        ['Tipo Ser', 'CUPS', 'CUPS VIGENTE', 'NOMBRE CUPS'],
        ['MEDICINA GENERAL', 890201, None, 'CONSULTA'],
        ['PEDIATRIA', None, None, 'SIN CODIGO'],
        ['PEDIATRIA', '890283', '890283', 'CONSULTA PEDIATRIA'],
    ]
    entries = load_cups_dictionary(rows)
    assert entries == [
        CupsEntry(cups='890201', cups_vigente='', nombre='CONSULTA', tipo_ser='MEDICINA GENERAL'),
        CupsEntry(cups='890283', cups_vigente='890283', nombre='CONSULTA PEDIATRIA', tipo_ser='PEDIATRIA'),
    ]
    assert entries[1].codes == ['890283']


def test_coincidence_to_dict():
    entry = CupsEntry(cups='890201', cups_vigente='', nombre='CONSULTA', tipo_ser='')
    (item,) = build_coincidence_report([entry], {}, {}).data
    data = item.to_dict()
    assert data['cupsVigente'] == ''
    assert data['poblacionParaFU'] == 0
    assert data['coincidences']['US'] == 0
