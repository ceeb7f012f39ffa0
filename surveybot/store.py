"""Typed survey rows and the in-memory tabular store."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, TypeVar

from .logger import LOGGER


def _clean(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _optional(value: Any) -> Optional[str]:
    text = _clean(value)
    return text or None


@dataclass(frozen=True)
class QuestionnaireRow:
    """One design-time survey item, kept as its raw header -> value mapping.

    The effective ``name``/``type``/``label`` columns differ between XLSForm
    exports, so they are resolved by :class:`~surveybot.catalog.VariableCatalog`.
    """

    columns: Mapping[str, str]

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "QuestionnaireRow":
        return cls(columns={str(k).strip(): _clean(v) for k, v in record.items() if str(k).strip()})

    def get(self, column: str, default: str = "") -> str:
        return self.columns.get(column, default)

    @property
    def headers(self) -> List[str]:
        return list(self.columns.keys())


@dataclass(frozen=True)
class ResultRow:
    """One quantitative observation.

    ``groups`` holds every non-standard column (``firm_owner_gender``,
    ``sampling_admin0``, ...) so a disaggregation key can be resolved to the
    row's group value without open-ended attribute access.
    """

    question: str
    disaggregation: str
    answer_option_tag: str = ""
    answer_option_eng: str = ""
    indicator: str = ""
    value: str = ""
    sample_size: str = ""
    se: Optional[str] = None
    question_type: str = ""
    question_eng: str = ""
    groups: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "ResultRow":
        cleaned = {str(k).strip(): v for k, v in record.items() if str(k).strip()}
        known = {f.name for f in fields(cls)} - {"groups"}
        return cls(
            question=_clean(cleaned.get("question")),
            disaggregation=_clean(cleaned.get("disaggregation")),
            answer_option_tag=_clean(cleaned.get("answer_option_tag")),
            answer_option_eng=_clean(cleaned.get("answer_option_eng")),
            indicator=_clean(cleaned.get("indicator")),
            value=_clean(cleaned.get("value")),
            sample_size=_clean(cleaned.get("sample_size")),
            se=_optional(cleaned.get("se")),
            question_type=_clean(cleaned.get("question_type")),
            question_eng=_clean(cleaned.get("question_eng")),
            groups={k: _clean(v) for k, v in cleaned.items() if k not in known},
        )

    def group_value(self, key: str) -> Optional[str]:
        value = self.groups.get(key)
        return value or None


@dataclass(frozen=True)
class QualitativeAnalysisRow:
    """One qualitative finding for a text question."""

    question: str
    theme: str
    summary: str = ""
    quotes: str = ""
    frequency: Optional[str] = None
    total_respondents: Optional[str] = None
    proportion_percent: Optional[str] = None

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "QualitativeAnalysisRow":
        cleaned = {str(k).strip(): v for k, v in record.items() if str(k).strip()}
        return cls(
            question=_clean(cleaned.get("question")),
            theme=_clean(cleaned.get("theme")),
            summary=_clean(cleaned.get("summary")),
            quotes=_clean(cleaned.get("quotes")),
            frequency=_optional(cleaned.get("frequency")),
            total_respondents=_optional(cleaned.get("total_respondents")),
            proportion_percent=_optional(cleaned.get("proportion_percent")),
        )


RowT = TypeVar("RowT")


def _match(rows: Sequence[RowT], criteria: Dict[str, str]) -> List[RowT]:
    return [
        row for row in rows
        if all(getattr(row, key) == expected for key, expected in criteria.items())
    ]


class TabularStore:
    """Read-only holder for the three uploaded datasets."""

    def __init__(
        self,
        questionnaire: Iterable[QuestionnaireRow] = (),
        results: Iterable[ResultRow] = (),
        qualitative: Iterable[QualitativeAnalysisRow] = (),
    ) -> None:
        self._questionnaire: Tuple[QuestionnaireRow, ...] = tuple(questionnaire)
        self._results: Tuple[ResultRow, ...] = tuple(results)
        self._qualitative: Tuple[QualitativeAnalysisRow, ...] = tuple(qualitative)
        if not self._questionnaire:
            LOGGER.warning("Questionnaire is empty; only analysis-time variables will be queryable")
        LOGGER.debug(
            "TabularStore: questionnaire=%d results=%d qualitative=%d",
            len(self._questionnaire), len(self._results), len(self._qualitative),
        )

    @classmethod
    def from_records(
        cls,
        questionnaire: Iterable[Mapping[str, Any]] = (),
        results: Iterable[Mapping[str, Any]] = (),
        qualitative: Iterable[Mapping[str, Any]] = (),
    ) -> "TabularStore":
        """Build a store from plain dict rows (decoded uploads, fixtures)."""
        return cls(
            questionnaire=[QuestionnaireRow.from_record(r) for r in questionnaire],
            results=[ResultRow.from_record(r) for r in results],
            qualitative=[QualitativeAnalysisRow.from_record(r) for r in qualitative],
        )

    @property
    def questionnaire(self) -> Tuple[QuestionnaireRow, ...]:
        return self._questionnaire

    @property
    def results(self) -> Tuple[ResultRow, ...]:
        return self._results

    @property
    def qualitative(self) -> Tuple[QualitativeAnalysisRow, ...]:
        return self._qualitative

    def filter_results(self, **criteria: str) -> List[ResultRow]:
        """Rows whose named fields equal the given values exactly."""
        return _match(self._results, criteria)

    def filter_qualitative(self, **criteria: str) -> List[QualitativeAnalysisRow]:
        return _match(self._qualitative, criteria)

    def summary(self) -> Dict[str, int]:
        return {
            "variables": len(self._questionnaire),
            "quantitative_rows": len(self._results),
            "qualitative_rows": len(self._qualitative),
        }


__all__ = ["QualitativeAnalysisRow", "QuestionnaireRow", "ResultRow", "TabularStore"]
