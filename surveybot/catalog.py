"""Variable catalog and disaggregation index derived from the tabular store.

The catalog is the only channel through which the model learns what can be
queried: its context block is injected verbatim into both the selector prompt
and the writer's system instruction.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

from .constants import (
    ANALYSIS_VARIABLE_LABEL,
    ANALYSIS_VARIABLE_TYPE,
    NO_LABEL,
    NUMERIC_TYPES,
    SELECT_TYPES,
    TEXT_TYPE,
    TOTAL_DISAGGREGATION,
)
from .logger import LOGGER
from .store import QuestionnaireRow, TabularStore


class VariableKind(str, Enum):
    """Which query tool a variable belongs to."""
    QUANTITATIVE = "quantitative"
    QUALITATIVE = "qualitative"

    @property
    def tag(self) -> str:
        return f"[{self.value.upper()}]"


@dataclass(frozen=True)
class Variable:
    name: str
    kind: VariableKind
    type_label: str
    label: str
    analysis_time: bool = False

    def context_line(self) -> str:
        return (
            f'- Variable: "{self.name}" | Type: {self.type_label} {self.kind.tag} '
            f'| Question: "{self.label}"'
        )


@dataclass(frozen=True)
class QuestionnaireColumns:
    """Effective header names for the questionnaire's type/name/label."""
    type: str = "type"
    name: str = "name"
    label: str = "label"


def detect_columns(headers: Sequence[str]) -> QuestionnaireColumns:
    """Case-insensitive header detection with literal fallbacks."""
    def find(predicate) -> Optional[str]:
        return next((h for h in headers if predicate(h.lower().strip())), None)

    return QuestionnaireColumns(
        type=find(lambda h: h == "type") or "type",
        name=find(lambda h: h == "name") or "name",
        label=find(lambda h: "label::english" in h or h == "label") or "label",
    )


def is_catalog_type(normalized_type: str) -> bool:
    if any(select in normalized_type for select in SELECT_TYPES):
        return True
    return normalized_type in NUMERIC_TYPES or normalized_type == TEXT_TYPE


def _clean_label(raw: str) -> str:
    return re.sub(r"\s+", " ", raw or NO_LABEL).strip() or NO_LABEL


class VariableCatalog:
    """Queryable survey variables and their LLM-facing description."""

    def __init__(self, variables: Sequence[Variable]) -> None:
        self._variables: Tuple[Variable, ...] = tuple(variables)
        self._by_name: Dict[str, Variable] = {v.name: v for v in self._variables}

    @classmethod
    def build(cls, store: TabularStore) -> "VariableCatalog":
        variables: List[Variable] = []
        seen: set = set()

        if store.questionnaire:
            columns = detect_columns(store.questionnaire[0].headers)
            LOGGER.debug(
                "Questionnaire columns: type=%s name=%s label=%s",
                columns.type, columns.name, columns.label,
            )
            for row in store.questionnaire:
                variable = cls._from_questionnaire_row(row, columns)
                if variable is None or variable.name in seen:
                    continue
                seen.add(variable.name)
                variables.append(variable)

        analysis_time: List[str] = []
        for row in store.results:
            name = row.question
            if name and name not in seen:
                seen.add(name)
                analysis_time.append(name)
                variables.append(Variable(
                    name=name,
                    kind=VariableKind.QUANTITATIVE,
                    type_label=ANALYSIS_VARIABLE_TYPE,
                    label=ANALYSIS_VARIABLE_LABEL,
                    analysis_time=True,
                ))

        if analysis_time:
            LOGGER.info("Found %d analysis-time variables: %s", len(analysis_time), analysis_time)
        else:
            LOGGER.info("No analysis-time variables found (all results variables exist in questionnaire)")

        return cls(variables)

    @staticmethod
    def _from_questionnaire_row(row: QuestionnaireRow, columns: QuestionnaireColumns) -> Optional[Variable]:
        name = row.get(columns.name).strip()
        if not name:
            return None
        raw_type = row.get(columns.type)
        normalized = raw_type.lower().strip()
        if not is_catalog_type(normalized):
            return None
        # "select_one yes_no" -> "select_one"
        type_label = raw_type.strip().split(" ")[0]
        kind = VariableKind.QUALITATIVE if normalized == TEXT_TYPE else VariableKind.QUANTITATIVE
        return Variable(
            name=name,
            kind=kind,
            type_label=type_label,
            label=_clean_label(row.get(columns.label)),
        )

    def __len__(self) -> int:
        return len(self._variables)

    def __iter__(self):
        return iter(self._variables)

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    @property
    def variables(self) -> Tuple[Variable, ...]:
        return self._variables

    @property
    def names(self) -> List[str]:
        return [v.name for v in self._variables]

    @property
    def analysis_time_variables(self) -> List[str]:
        return [v.name for v in self._variables if v.analysis_time]

    def get(self, name: str) -> Optional[Variable]:
        return self._by_name.get(name)

    def is_valid_variable(self, name: str) -> bool:
        return name in self._by_name

    def kind_of(self, name: str) -> Optional[VariableKind]:
        variable = self._by_name.get(name)
        return variable.kind if variable else None

    def context_block(self) -> str:
        declared = [v.context_line() for v in self._variables if not v.analysis_time]
        block = "\n".join(declared)
        discovered = [v.context_line() for v in self._variables if v.analysis_time]
        if discovered:
            block += (
                "\n\n--- Analysis-Time Variables (created during data processing) ---\n"
                + "\n".join(discovered)
            )
        return block


class DisaggregationIndex:
    """Sorted distinct ``disaggregation`` keys found in the results."""

    def __init__(self, values: Sequence[str]) -> None:
        self._values: Tuple[str, ...] = tuple(sorted(set(values)))

    @classmethod
    def build(cls, store: TabularStore) -> "DisaggregationIndex":
        index = cls([row.disaggregation.strip() for row in store.results if row.disaggregation.strip()])
        LOGGER.info("Extracted disaggregation values: %s", index.values)
        if index.values and not index.has_total:
            LOGGER.warning(
                "No '%s' disaggregation in results; overall totals cannot be queried",
                TOTAL_DISAGGREGATION,
            )
        return index

    def __len__(self) -> int:
        return len(self._values)

    def __contains__(self, value: object) -> bool:
        return value in self._values

    @property
    def values(self) -> List[str]:
        return list(self._values)

    @property
    def has_total(self) -> bool:
        return TOTAL_DISAGGREGATION in self._values

    def describe(self) -> str:
        """Prompt text form: ``'all', 'gender'``."""
        return ", ".join(f"'{v}'" for v in self._values)


__all__ = [
    "DisaggregationIndex",
    "QuestionnaireColumns",
    "Variable",
    "VariableCatalog",
    "VariableKind",
    "detect_columns",
    "is_catalog_type",
]
