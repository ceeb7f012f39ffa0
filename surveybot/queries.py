"""Read-only quantitative and qualitative lookups executed for tool calls."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from .constants import (
    EXECUTIVE_SUMMARY_THEME,
    NO_EXECUTIVE_SUMMARY,
    NO_QUALITATIVE_MESSAGE,
    QUOTE_DELIMITER,
    TOTAL_DISAGGREGATION,
)
from .logger import LOGGER
from .store import QualitativeAnalysisRow, ResultRow, TabularStore

QuantitativeResult = List[Dict[str, str]]
QualitativeResult = Dict[str, Any]


def format_prevalence(proportion: Optional[str]) -> str:
    """``"0.45"`` -> ``"45.0%"``; missing or non-numeric -> ``"N/A"``."""
    if proportion is None:
        return "N/A"
    try:
        share = float(proportion)
    except (TypeError, ValueError):
        return "N/A"
    return f"{share * 100:.1f}%"


def split_quotes(raw: str) -> List[str]:
    if not raw:
        return []
    return [quote.strip() for quote in raw.split(QUOTE_DELIMITER) if quote.strip()]


def as_number(raw: Optional[str]) -> Optional[Union[int, float]]:
    """Parse a sample size or respondent count for traces."""
    if raw is None or raw == "":
        return None
    try:
        number = float(raw)
    except (TypeError, ValueError):
        return None
    return int(number) if number.is_integer() else number


class QueryEngine:
    """Executes the two tool queries against a :class:`TabularStore`."""

    def __init__(self, store: TabularStore) -> None:
        self.store = store

    @staticmethod
    def _group_for(row: ResultRow, disaggregation: str) -> str:
        if disaggregation == TOTAL_DISAGGREGATION:
            return TOTAL_DISAGGREGATION
        return row.group_value(disaggregation) or disaggregation

    def quantitative(self, question_name: str, disaggregation: str) -> QuantitativeResult:
        LOGGER.debug("Quantitative query: %s, disaggregation=%s", question_name, disaggregation)
        rows = self.store.filter_results(question=question_name, disaggregation=disaggregation)
        return [
            {
                "answer": row.answer_option_eng or row.answer_option_tag,
                "value": row.value,
                "unit": row.indicator,
                "sample_size": row.sample_size,
                "group": self._group_for(row, disaggregation),
            }
            for row in rows
        ]

    @staticmethod
    def _theme_entry(row: QualitativeAnalysisRow) -> Dict[str, Any]:
        return {
            "theme": row.theme,
            "prevalence": format_prevalence(row.proportion_percent),
            "count": row.frequency,
            "insight": row.summary,
            "quotes": split_quotes(row.quotes),
        }

    def qualitative(self, question_name: str) -> QualitativeResult:
        LOGGER.debug("Qualitative query: %s", question_name)
        rows = self.store.filter_qualitative(question=question_name)
        if not rows:
            return {"message": NO_QUALITATIVE_MESSAGE}

        summary = next((r for r in rows if r.theme == EXECUTIVE_SUMMARY_THEME), None)
        return {
            "variable": question_name,
            "overview": (summary.summary if summary else "") or NO_EXECUTIVE_SUMMARY,
            "total_respondents": summary.total_respondents if summary else None,
            "themes": [self._theme_entry(r) for r in rows if r.theme != EXECUTIVE_SUMMARY_THEME],
        }


__all__ = [
    "QualitativeResult",
    "QuantitativeResult",
    "QueryEngine",
    "as_number",
    "format_prevalence",
    "split_quotes",
]
