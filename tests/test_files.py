"""Tests for questionnaire CSV and results workbook decoding."""
import io

import pandas as pd
import pytest


def _workbook(*sheets):
    buffer = io.BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        for name, frame in sheets:
            frame.to_excel(writer, sheet_name=name, index=False)
    return buffer.getvalue()


class TestQuestionnaireCsv:
    def test_bom_headers_and_values_trimmed(self):
        from surveybot.files import parse_questionnaire_csv
        data = (
            "\ufefftype , name ,label::English (en),\n"
            "select_one yes_no, electricity_outages ,\"Had power\noutages?\",x\n"
            "\n"
            "text,trust_in_banks,\"Why, or why not?\",\n"
        ).encode("utf-8")
        rows = parse_questionnaire_csv(data)
        assert rows == [
            {"type": "select_one yes_no", "name": "electricity_outages",
             "label::English (en)": "Had power\noutages?"},
            {"type": "text", "name": "trust_in_banks", "label::English (en)": "Why, or why not?"},
        ]

    def test_na_strings_are_kept(self):
        from surveybot.files import parse_questionnaire_csv
        rows = parse_questionnaire_csv(b"type,name\ninteger,NA\n")
        assert rows == [{"type": "integer", "name": "NA"}]

    def test_empty_file_raises(self):
        from surveybot.files import UploadFormatError, parse_questionnaire_csv
        with pytest.raises(UploadFormatError):
            parse_questionnaire_csv(b"   ")

    def test_accepts_file_like(self):
        from surveybot.files import parse_questionnaire_csv
        assert parse_questionnaire_csv(io.BytesIO(b"name\nq1\n")) == [{"name": "q1"}]


class TestResultsWorkbook:
    def test_two_sheets(self):
        from surveybot.files import parse_results_workbook
        quant = pd.DataFrame([
            {" question ": "electricity_outages", "disaggregation": "all", "value": 63, "sample_size": 450},
            {" question ": "electricity_outages", "disaggregation": "gender", "value": 19.5, "sample_size": 120},
        ])
        qual = pd.DataFrame([
            {"question": "trust_in_banks", "theme": "Collateral", "proportion_percent": 0.45,
             "quotes": "q1\n---\nq2", "frequency": None},
        ])
        workbook = parse_results_workbook(_workbook(("Quant", quant), ("Qual", qual)))

        assert workbook.sheet_names == ["Quant", "Qual"]
        assert workbook.quantitative[0] == {
            "question": "electricity_outages", "disaggregation": "all", "value": "63", "sample_size": "450",
        }
        assert workbook.quantitative[1]["value"] == "19.5"
        assert workbook.qualitative[0]["proportion_percent"] == "0.45"
        assert workbook.qualitative[0]["quotes"] == "q1\n---\nq2"
        assert workbook.qualitative[0]["frequency"] == ""

    def test_missing_second_sheet_degrades_to_empty(self):
        from surveybot.files import parse_results_workbook
        quant = pd.DataFrame([{"question": "q", "disaggregation": "all", "value": "1"}])
        workbook = parse_results_workbook(_workbook(("Only", quant)))
        assert len(workbook.quantitative) == 1
        assert workbook.qualitative == []

    def test_unreadable_file_raises(self):
        from surveybot.files import UploadFormatError, parse_results_workbook
        with pytest.raises(UploadFormatError):
            parse_results_workbook(b"definitely not a workbook")
