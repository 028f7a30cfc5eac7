from datetime import datetime

from validation import (
    STATUS_FAIL,
    STATUS_OK,
    FileValidation,
    SegmentCheck,
    compare_counts,
    expected_from_ct,
    generate_text_report,
    parse_count,
    validate_segments,
    write_text_report,
)


def test_count_mismatch_is_reported_per_segment():
    segments = {
        'CT': ['x,x,AF,5', 'x,x,AC,5'],
        'AF': ['a'] * 5,
        'AC': ['c'] * 3,
    }
    expected, found, result = validate_segments(segments, 'demo.txt')

    assert expected == {'AF': 5, 'AC': 5}
    assert found == {'AF': 5, 'AC': 3}
    assert result.segments == (
        SegmentCheck('AC', 5, 3, STATUS_FAIL),
        SegmentCheck('AF', 5, 5, STATUS_OK),
    )
    assert not result.is_valid
    assert [c.name for c in result.failures] == ['AC']


def test_ct_counts_for_same_segment_are_summed():
    segments = {'CT': ['x,x,US,2', 'x,x,US,3', 'x,x,AF001,1']}
    assert expected_from_ct(segments) == {'US': 5, 'AF': 1}


def test_short_or_non_numeric_ct_lines_are_ignored():
    segments = {'CT': ['x,x,AF', 'x,x,AC,abc', 'x,x,AP, 7 ']}
    assert expected_from_ct(segments) == {'AP': 7}


def test_segment_without_ct_is_a_failure():
    _, _, result = validate_segments({'US': ['u1', 'u2']})
    assert result.segments == (SegmentCheck('US', 0, 2, STATUS_FAIL),)


def test_declared_but_absent_segment_is_a_failure():
    _, _, result = validate_segments({'CT': ['x,x,AM,4']})
    assert result.segments == (SegmentCheck('AM', 4, 0, STATUS_FAIL),)


def test_empty_file_has_no_checks_and_is_not_valid():
    _, _, result = validate_segments({}, 'empty.txt')
    assert result.segments == ()
    assert result.is_valid is False


def test_ct_itself_is_never_compared():
    checks = compare_counts({'CT': 1, 'AF': 1}, {'CT': 1, 'AF': 1})
    assert [c.name for c in checks] == ['AF']


def test_parse_count():
    assert parse_count('12') == 12
    assert parse_count(' 3x') == 3
    assert parse_count('') is None
    assert parse_count(None) is None
    assert parse_count('x3') is None


def test_text_report_lists_every_file():
    ok = FileValidation('a.txt', (SegmentCheck('AF', 1, 1, STATUS_OK),))
    bad = FileValidation('b.txt', (SegmentCheck('AC', 2, 1, STATUS_FAIL),))
    empty = FileValidation('c.txt')

    report = generate_text_report([ok, bad, empty], generated=datetime(2025, 5, 5, 10, 30))

    assert "Generated: 2025-05-05 10:30:00" in report
    assert "Files validated: 3" in report
    assert "Files with differences: 2" in report
    assert "File: a.txt" in report
    assert "DIFFERENCE" in report
    assert "Consultas" in report
    assert "No segments detected" in report


def test_write_text_report(tmp_path):
    out = tmp_path / "report.txt"
    content = write_text_report([FileValidation('a.txt', (SegmentCheck('AF', 1, 1, STATUS_OK),))], str(out))
    assert out.read_text(encoding='utf-8') == content


def test_results_serialize_with_camel_case_names():
    result = FileValidation('a.txt', (SegmentCheck('AF', 1, 2, STATUS_FAIL),))
    assert result.to_dict() == {
        'fileName': 'a.txt',
        'segments': [{'name': 'AF', 'expected': 1, 'found': 2, 'status': 'fail'}],
    }
    assert str(result.segments[0]) == "[FAIL] AF: expected 1, found 2"
