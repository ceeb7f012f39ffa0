"""Gemini function declarations for the two survey query tools."""

from __future__ import annotations

from typing import List, Sequence

from google.genai import types

from .constants import QUAL_TOOL_NAME, QUANT_TOOL_NAME

QUALITATIVE_TOOL = types.FunctionDeclaration(
    name=QUAL_TOOL_NAME,
    description=(
        "Queries the qualitative analysis findings. Use this for 'text' or 'open-ended' "
        "type questions to get themes, summaries, and quotes."
    ),
    parameters=types.Schema(
        type=types.Type.OBJECT,
        properties={
            "question_name": types.Schema(
                type=types.Type.STRING,
                description=(
                    "The unique variable name of the qualitative question "
                    "(e.g., 'climate_change_mitigation')."
                ),
            ),
        },
        required=["question_name"],
    ),
)


def build_quantitative_tool(disaggregation_values: Sequence[str]) -> types.FunctionDeclaration:
    """Quantitative tool whose ``disaggregation`` enum mirrors the loaded results.

    Must be rebuilt whenever the disaggregation index changes. With no known
    values the parameter is left as free text.
    """
    values: List[str] = list(disaggregation_values)
    allowed = ", ".join(f"'{v}'" for v in values)
    return types.FunctionDeclaration(
        name=QUANT_TOOL_NAME,
        description=(
            "Queries the aggregated quantitative survey results (numbers, percentages, means). "
            "Use this for 'select_one', 'select_multiple', or 'integer' type questions. "
            "Returns data for all groups within the chosen disaggregation level."
        ),
        parameters=types.Schema(
            type=types.Type.OBJECT,
            properties={
                "question_name": types.Schema(
                    type=types.Type.STRING,
                    description="The unique variable name (e.g., 'electricity_outages').",
                ),
                "disaggregation": types.Schema(
                    type=types.Type.STRING,
                    description=(
                        f"The disaggregation level. Must be one of: {allowed}. "
                        "Use 'all' for overall totals, or a specific disaggregation to get "
                        "breakdowns by group."
                    ),
                    enum=values or None,
                ),
            },
            required=["question_name", "disaggregation"],
        ),
    )


def build_toolset(disaggregation_values: Sequence[str]) -> List[types.Tool]:
    return [
        types.Tool(
            function_declarations=[
                build_quantitative_tool(disaggregation_values),
                QUALITATIVE_TOOL,
            ]
        )
    ]


__all__ = ["QUALITATIVE_TOOL", "build_quantitative_tool", "build_toolset"]
