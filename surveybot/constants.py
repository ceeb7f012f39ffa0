"""Shared constants for survey indexing, querying and orchestration."""

from __future__ import annotations

QUANT_TOOL_NAME = "query_survey_data"
QUAL_TOOL_NAME = "query_qualitative_data"

# Reserved disaggregation key for the ungrouped total
TOTAL_DISAGGREGATION = "all"

# Reserved theme value carrying the per-question overview
EXECUTIVE_SUMMARY_THEME = "Executive Summary"
QUOTE_DELIMITER = "\n---\n"

NO_LABEL = "No Label"
ANALYSIS_VARIABLE_LABEL = "Analysis variable"
ANALYSIS_VARIABLE_TYPE = "analysis"

NO_QUALITATIVE_MESSAGE = "No qualitative analysis found for this variable."
NO_EXECUTIVE_SUMMARY = "No executive summary available."
UNKNOWN_TOOL_RESULT = "Unknown tool"
EMPTY_RESPONSE_FALLBACK = "Processed data but no text response generated."

READY_MESSAGE = (
    "I'm ready! I have analyzed the questionnaire, the quantitative data, and the "
    "qualitative themes. Ask me to write a report section, analyze challenges, or "
    "synthesize findings."
)

# XLSForm question types that become catalog entries
SELECT_TYPES = ("select_one", "select_multiple")
NUMERIC_TYPES = frozenset({"integer", "decimal", "calculate", "calculated"})
TEXT_TYPE = "text"
