"""
Validation Error Explainer (external service seam)

Packages a failing segment count into an AnalysisTarget and hands it to an
injected analyzer (typically an LLM client). The analyzer is slow and
fallible: any exception it raises is logged and turned into None so the
validation results are never affected.

An analyzer is any callable taking an AnalysisTarget and returning a mapping
with 'analysis' (str) and 'suggestions' (list of str).
"""

import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional

from validation import FileValidation

logger = logging.getLogger(__name__)

PROMPT_TEMPLATE = (
    "You are an assistant specializing in analyzing RIPS (Registro Individual de "
    "Prestacion de Servicios de Salud) file validation errors.\n\n"
    "A RIPS file named \"{file_name}\" has failed validation. Specifically, the "
    "segment \"{segment}\" was expected to have {expected} records, but {found} "
    "were found.\n"
    "Here is the content of the RIPS file:\n{file_content}\n"
    "Analyze the error, considering the file content and the discrepancy between "
    "expected and found record counts.\n"
    "Provide a ranked list of potential reasons for this discrepancy and suggest "
    "corrections or areas to investigate.\n"
    "Return the output in JSON format with 'suggestions' as a ranked list of "
    "potential fixes and 'analysis' providing a brief explanation of the error context."
)


@dataclass(frozen=True)
class AnalysisTarget:
    file_name: str
    segment: str
    expected: int
    found: int
    file_content: str

    def to_dict(self):
        return {
            'fileName': self.file_name,
            'segment': self.segment,
            'expected': self.expected,
            'found': self.found,
            'fileContent': self.file_content,
        }


@dataclass
class AnalysisResult:
    analysis: str
    suggestions: List[str] = field(default_factory=list)

    def to_dict(self):
        return asdict(self)


Analyzer = Callable[[AnalysisTarget], Mapping[str, Any]]


def analysis_targets(result: FileValidation, file_content: str) -> List[AnalysisTarget]:
    """One target per failing segment of a validated file"""
    return [
        AnalysisTarget(
            file_name=result.file_name,
            segment=check.name,
            expected=check.expected,
            found=check.found,
            file_content=file_content,
        )
        for check in result.failures
    ]


def build_analysis_prompt(target: AnalysisTarget) -> str:
    return PROMPT_TEMPLATE.format(**asdict(target))


def analyze_validation_error(target: AnalysisTarget, analyzer: Analyzer) -> Optional[AnalysisResult]:
    """
    Ask the analyzer to explain one failing segment.

    Returns:
        AnalysisResult, or None when the analyzer fails or answers malformed data
    """
    try:
        output = analyzer(target)
    except Exception as e:
        logger.warning("Error analysis failed for %s/%s: %s", target.file_name, target.segment, e)
        return None

    if not isinstance(output, Mapping):
        logger.warning("Error analysis for %s/%s returned %s, expected a mapping",
                       target.file_name, target.segment, type(output).__name__)
        return None

    suggestions = output.get('suggestions') or []
    if isinstance(suggestions, str):
        suggestions = [suggestions]
    return AnalysisResult(
        analysis=str(output.get('analysis') or ''),
        suggestions=[str(s) for s in suggestions],
    )


def analyze_file(result: FileValidation, file_content: str,
                 analyzer: Analyzer) -> Dict[str, Optional[AnalysisResult]]:
    """Explain every failing segment of a file; segment -> result (None on failure)"""
    return {
        target.segment: analyze_validation_error(target, analyzer)
        for target in analysis_targets(result, file_content)
    }
