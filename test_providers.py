from decimal import Decimal

from providers import (
    AfDetail,
    AfProvider,
    extract_af,
    merge_af_summaries,
    parse_billed_value,
    provider_key,
    total_billed,
)


def af_line(valor, ni='900794134', nombre='IPS INDIGENA KOTTUSHI', inicio='01/04/2025', fin='30/04/2025'):
    return (f"440010095404,{nombre},NI,{ni},ACP170,05/05/2025,{inicio},{fin},EPSI01,"
            f"DUSAKAWI EPSI,44847-08EB,ESPECIALIDADES,SUBSIDIADO,,0,0,{valor}")


def test_extract_af_reads_provider_fields():
    summary = extract_af({'AF': [af_line('1500.50')]}, 'AF1.txt')

    provider = summary[provider_key('900794134', 'IPS INDIGENA KOTTUSHI')]
    assert provider.ni == '900794134'
    assert provider.contrato == '44847-08EB'
    assert provider.tipo_servicio == 'ESPECIALIDADES'
    assert provider.regimen == 'SUBSIDIADO'
    assert provider.valor_total == Decimal('1500.50')
    assert provider.detalles == [
        AfDetail(inicio='01/04/2025', periodo='01/04/2025 a 30/04/2025',
                 valor=Decimal('1500.50'), archivo='AF1.txt'),
    ]


def test_short_af_lines_are_skipped():
    assert extract_af({'AF': ['a,b,c'], 'US': [af_line(5)]}, 'x.txt') == {}


def test_unparseable_values_count_as_zero():
    assert parse_billed_value('abc') == Decimal('0')
    assert parse_billed_value('') == Decimal('0')
    assert parse_billed_value(None) == Decimal('0')
    assert parse_billed_value('NaN') == Decimal('0')
    assert parse_billed_value('Infinity') == Decimal('0')
    assert parse_billed_value(' 250 ') == Decimal('250')


def test_same_provider_across_files_is_merged_in_order():
    first = extract_af({'AF': [af_line(100)]}, 'a.txt')
    second = extract_af({'AF': [af_line(250, inicio='01/05/2025', fin='31/05/2025')]}, 'b.txt')

    merged = merge_af_summaries([first, second])

    (provider,) = merged.values()
    assert provider.valor_total == Decimal('350')
    assert [d.archivo for d in provider.detalles] == ['a.txt', 'b.txt']
    assert provider.valor_total == sum(d.valor for d in provider.detalles)


def test_merge_does_not_modify_inputs():
    first = extract_af({'AF': [af_line(100)]}, 'a.txt')
    second = extract_af({'AF': [af_line(250)]}, 'b.txt')

    merge_af_summaries([first, second])

    assert len(first[provider_key('900794134', 'IPS INDIGENA KOTTUSHI')].detalles) == 1
    assert first[provider_key('900794134', 'IPS INDIGENA KOTTUSHI')].valor_total == Decimal('100')


def test_merge_order_only_changes_detail_order():
    a = extract_af({'AF': [af_line(100), af_line(7, ni='800', nombre='OTRA IPS')]}, 'a.txt')
    b = extract_af({'AF': [af_line(250)]}, 'b.txt')

    ab = merge_af_summaries([a, b])
    ba = merge_af_summaries([b, a])

    assert set(ab) == set(ba)
    for key in ab:
        assert ab[key].valor_total == ba[key].valor_total
        assert sorted(d.archivo for d in ab[key].detalles) == sorted(d.archivo for d in ba[key].detalles)
    assert total_billed(ab) == Decimal('357')


def test_provider_to_dict_uses_report_names():
    provider = AfProvider('IPS', '900', 'C1', 'ESPECIALIDADES', 'SUBSIDIADO')
    provider.add_detail(AfDetail('01/04/2025', '01/04/2025 a 30/04/2025', Decimal('10'), 'a.txt'))

    data = provider.to_dict()

    assert data['nombrePrestador'] == 'IPS'
    assert data['NI'] == '900'
    assert data['valorTotal'] == Decimal('10')
    assert data['detalles'][0]['periodo'] == '01/04/2025 a 30/04/2025'
    assert provider.key == '900-IPS'


def test_separate_files_merged_equal_one_pass_over_all_lines():
    lines_a = [af_line(100), af_line(7, ni='800', nombre='OTRA IPS')]
    lines_b = [af_line(250, inicio='01/05/2025', fin='31/05/2025'), af_line(3, ni='800', nombre='OTRA IPS')]

    merged = merge_af_summaries([extract_af({'AF': lines_a}, 'lote.txt'),
                                 extract_af({'AF': lines_b}, 'lote.txt')])
    one_pass = extract_af({'AF': lines_a + lines_b}, 'lote.txt')

    assert list(merged) == list(one_pass)
    for key in one_pass:
        assert merged[key].valor_total == one_pass[key].valor_total
        assert merged[key].detalles == one_pass[key].detalles
