from error_analysis import (
    AnalysisResult,
    AnalysisTarget,
    analysis_targets,
    analyze_file,
    analyze_validation_error,
    build_analysis_prompt,
)
from validation import STATUS_FAIL, STATUS_OK, FileValidation, SegmentCheck

RESULT = FileValidation('AF1.txt', (
    SegmentCheck('AC', 5, 3, STATUS_FAIL),
    SegmentCheck('AF', 5, 5, STATUS_OK),
))
TARGET = AnalysisTarget('AF1.txt', 'AC', 5, 3, 'ARCHIVO-RIPS-AC')


def test_targets_only_for_failing_segments():
    targets = analysis_targets(RESULT, 'content')
    assert targets == [AnalysisTarget('AF1.txt', 'AC', 5, 3, 'content')]
    assert targets[0].to_dict()['fileName'] == 'AF1.txt'


def test_prompt_mentions_counts_and_content():
    prompt = build_analysis_prompt(TARGET)
    assert '"AF1.txt"' in prompt
    assert 'expected to have 5 records, but 3' in prompt
    assert 'ARCHIVO-RIPS-AC' in prompt


def test_analyzer_output_is_normalized():
    result = analyze_validation_error(TARGET, lambda t: {'analysis': 'missing lines', 'suggestions': 'recount'})
    assert result == AnalysisResult(analysis='missing lines', suggestions=['recount'])


def test_analyzer_failure_returns_none():
    def broken(target):
        raise RuntimeError("service unavailable")

    assert analyze_validation_error(TARGET, broken) is None
    assert analyze_validation_error(TARGET, lambda t: 'not a mapping') is None


def test_analyze_file_keys_by_segment():
    seen = []

    def analyzer(target):
        seen.append(target.segment)
        return {'analysis': 'ok', 'suggestions': ['a', 'b']}

    results = analyze_file(RESULT, 'content', analyzer)

    assert seen == ['AC']
    assert results['AC'].suggestions == ['a', 'b']
    assert results['AC'].to_dict() == {'analysis': 'ok', 'suggestions': ['a', 'b']}
