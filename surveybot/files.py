"""Upload decoding: questionnaire CSV and results workbook to plain row dicts."""

from __future__ import annotations

import io
from dataclasses import dataclass, field
from typing import Any, BinaryIO, Dict, List, Union

import pandas as pd

from .logger import LOGGER

UploadSource = Union[bytes, bytearray, BinaryIO]

BOM = "\ufeff"


class UploadFormatError(ValueError):
    """The uploaded file could not be decoded into rows."""


@dataclass
class ResultsWorkbook:
    quantitative: List[Dict[str, str]]
    qualitative: List[Dict[str, str]] = field(default_factory=list)
    sheet_names: List[str] = field(default_factory=list)


def _read_bytes(source: UploadSource) -> bytes:
    if isinstance(source, (bytes, bytearray)):
        return bytes(source)
    data = source.read()
    return data.encode("utf-8") if isinstance(data, str) else data


def _is_blank_header(header: str) -> bool:
    # pandas names empty header cells "Unnamed: <n>"
    return not header or header.startswith("Unnamed:")


def frame_to_records(frame: pd.DataFrame) -> List[Dict[str, str]]:
    """Trim headers and values, strip a leading BOM, drop blank headers and rows."""
    headers = [str(c).strip() for c in frame.columns]
    if headers:
        headers[0] = headers[0].lstrip(BOM).strip()
    frame = frame.copy()
    frame.columns = headers
    keep = [h for h in headers if not _is_blank_header(h)]
    frame = frame.loc[:, keep]

    records: List[Dict[str, str]] = []
    for raw in frame.to_dict(orient="records"):
        row = {k: _cell_text(v) for k, v in raw.items()}
        if any(row.values()):
            records.append(row)
    return records


def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float):
        if pd.isna(value):
            return ""
        if value.is_integer():
            return str(int(value))
    return str(value).strip()


def parse_questionnaire_csv(source: UploadSource) -> List[Dict[str, str]]:
    """Decode an XLSForm survey sheet exported as CSV."""
    data = _read_bytes(source)
    if not data.strip():
        raise UploadFormatError("Questionnaire file is empty")
    try:
        frame = pd.read_csv(
            io.BytesIO(data),
            dtype=str,
            keep_default_na=False,
            encoding="utf-8-sig",
            skip_blank_lines=True,
        )
    except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as exc:
        raise UploadFormatError(f"Could not parse questionnaire CSV: {exc}") from exc

    records = frame_to_records(frame)
    LOGGER.info("Parsed questionnaire: %d rows, columns=%s", len(records), list(frame.columns))
    return records


def parse_results_workbook(source: UploadSource) -> ResultsWorkbook:
    """Decode results: sheet 1 is quantitative, optional sheet 2 is qualitative."""
    data = _read_bytes(source)
    try:
        workbook = pd.ExcelFile(io.BytesIO(data), engine="openpyxl")
    except Exception as exc:
        raise UploadFormatError(f"Could not open results workbook: {exc}") from exc

    with workbook:
        sheet_names = list(workbook.sheet_names)
        if not sheet_names:
            raise UploadFormatError("Excel file is empty")

        try:
            quant_frame = workbook.parse(sheet_names[0], dtype=object, na_filter=False)
        except Exception as exc:
            raise UploadFormatError(f"Could not read sheet '{sheet_names[0]}': {exc}") from exc
        quantitative = frame_to_records(quant_frame)

        qualitative: List[Dict[str, str]] = []
        if len(sheet_names) > 1:
            try:
                qual_frame = workbook.parse(sheet_names[1], dtype=object, na_filter=False)
                qualitative = frame_to_records(qual_frame)
            except Exception as exc:
                LOGGER.warning("Could not parse qualitative data (sheet '%s'): %s", sheet_names[1], exc)
            if not qualitative:
                LOGGER.warning("No qualitative data found in second sheet.")
        else:
            LOGGER.warning("Results workbook has no second sheet; qualitative data is empty")

    LOGGER.info(
        "Parsed results workbook: %d quantitative rows, %d qualitative rows",
        len(quantitative), len(qualitative),
    )
    return ResultsWorkbook(quantitative=quantitative, qualitative=qualitative, sheet_names=sheet_names)


__all__ = [
    "ResultsWorkbook",
    "UploadFormatError",
    "frame_to_records",
    "parse_questionnaire_csv",
    "parse_results_workbook",
]
