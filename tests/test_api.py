"""Tests for the FastAPI layer using TestClient and the scripted provider."""
import io
import json

import pandas as pd
import pytest

from surveybot.gemini import ChatReply


QUESTIONNAIRE_CSV = (
    "type,name,label\n"
    "select_one yes_no,electricity_outages,Had power outages?\n"
    "text,trust_in_banks,Why do you trust banks?\n"
).encode("utf-8")


def _results_xlsx():
    buffer = io.BytesIO()
    quant = pd.DataFrame([
        {"question": "electricity_outages", "disaggregation": "all", "answer_option_eng": "Yes",
         "indicator": "percent", "value": "63", "sample_size": "450"},
        {"question": "electricity_outages", "disaggregation": "gender", "answer_option_eng": "Yes",
         "indicator": "percent", "value": "19", "sample_size": "120"},
    ])
    qual = pd.DataFrame([
        {"question": "trust_in_banks", "theme": "Executive Summary", "summary": "Low trust overall"},
    ])
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        quant.to_excel(writer, sheet_name="Quantitative", index=False)
        qual.to_excel(writer, sheet_name="Qualitative", index=False)
    return buffer.getvalue()


@pytest.fixture
def client(provider):
    from fastapi.testclient import TestClient
    from api.dependencies import get_provider
    from api.main import app
    from api.workspaces import clear_workspaces

    app.dependency_overrides[get_provider] = lambda: provider
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
    clear_workspaces()


@pytest.fixture
def workspace_id(client):
    response = client.post("/api/v1/workspaces")
    assert response.status_code == 201
    return response.json()["workspace_id"]


@pytest.fixture
def loaded_workspace(client, workspace_id):
    client.post(
        f"/api/v1/workspaces/{workspace_id}/questionnaire",
        files={"file": ("survey.csv", QUESTIONNAIRE_CSV, "text/csv")},
    )
    response = client.post(
        f"/api/v1/workspaces/{workspace_id}/results",
        files={"file": ("results.xlsx", _results_xlsx(),
                        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet")},
    )
    assert response.status_code == 200
    return workspace_id


def _sse_events(body: str):
    events = []
    for block in body.strip().split("\n\n"):
        lines = block.splitlines()
        name = lines[0][len("event: "):]
        data = json.loads(lines[1][len("data: "):])
        events.append((name, data))
    return events


class TestHealthAndWorkspaces:
    def test_health(self, client):
        response = client.get("/api/v1/health")
        assert response.status_code == 200
        assert "workspaces" in response.json()

    def test_unknown_workspace_is_404(self, client):
        assert client.get("/api/v1/workspaces/missing").status_code == 404

    def test_uploads_make_workspace_ready(self, client, loaded_workspace):
        body = client.get(f"/api/v1/workspaces/{loaded_workspace}").json()
        assert body["ready"] is True
        assert body["data"]["variables"] == 2
        assert body["data"]["quantitative_rows"] == 2
        assert body["data"]["qualitative_rows"] == 1
        assert body["initialization"]["disaggregation_values"] == ["all", "gender"]

    def test_bad_upload_is_422_and_keeps_data(self, client, loaded_workspace):
        response = client.post(
            f"/api/v1/workspaces/{loaded_workspace}/results",
            files={"file": ("broken.xlsx", b"not excel", "application/octet-stream")},
        )
        assert response.status_code == 422
        body = client.get(f"/api/v1/workspaces/{loaded_workspace}").json()
        assert body["data"]["quantitative_rows"] == 2


    def test_upload_parsing_runs_off_the_event_loop(self, client, workspace_id, monkeypatch):
        import asyncio
        from api.routes import workspaces as workspace_routes
        from surveybot.files import parse_questionnaire_csv

        threads = []

        def parse(data):
            try:
                asyncio.get_running_loop()
                threads.append("event-loop")
            except RuntimeError:
                threads.append("worker")
            return parse_questionnaire_csv(data)

        monkeypatch.setattr(workspace_routes, "parse_questionnaire_csv", parse)
        response = client.post(
            f"/api/v1/workspaces/{workspace_id}/questionnaire",
            files={"file": ("survey.csv", QUESTIONNAIRE_CSV, "text/csv")},
        )
        assert response.status_code == 200
        assert threads == ["worker"]


class TestChat:
    def test_chat_before_data_is_503(self, client, workspace_id):
        response = client.post(f"/api/v1/workspaces/{workspace_id}/chat", json={"message": "hi"})
        assert response.status_code == 503

    def test_blank_message_is_422(self, client, loaded_workspace):
        response = client.post(f"/api/v1/workspaces/{loaded_workspace}/chat", json={"message": "   "})
        assert response.status_code == 422

    def test_chat_round_trip(self, client, provider, loaded_workspace):
        from surveybot.gemini import ToolCall
        provider.selector_response = ["electricity_outages"]
        provider.replies = [
            ChatReply(tool_calls=[ToolCall(
                name="query_survey_data",
                args={"question_name": "electricity_outages", "disaggregation": "gender"},
                call_id="c1",
            )]),
            ChatReply(text="19% in the gender breakdown."),
        ]
        response = client.post(
            f"/api/v1/workspaces/{loaded_workspace}/chat", json={"message": "Outages by gender?"}
        )
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "completed"
        assert body["message"]["content"] == "19% in the gender breakdown."
        assert body["message"]["trace"]["queries_executed"][0]["disaggregation"] == "gender"

        transcript = client.get(f"/api/v1/workspaces/{loaded_workspace}/messages").json()
        assert [m["role"] for m in transcript["messages"]] == ["system", "user", "model"]
        assert transcript["is_processing"] is False

    def test_provider_error_is_reported_as_message(self, client, provider, loaded_workspace):
        provider.replies = [RuntimeError("boom")]
        body = client.post(
            f"/api/v1/workspaces/{loaded_workspace}/chat", json={"message": "hello"}
        ).json()
        assert body["status"] == "error"
        assert body["message"]["content"] == "Error: boom"

    def test_stream_emits_progress_then_message(self, client, provider, loaded_workspace):
        provider.replies = [ChatReply(text="Streamed answer")]
        response = client.post(
            f"/api/v1/workspaces/{loaded_workspace}/chat/stream", json={"message": "hello"}
        )
        assert response.status_code == 200
        events = _sse_events(response.text)
        names = [name for name, _ in events]
        assert names[0] == "progress"
        assert names[-2:] == ["message", "done"]
        assert events[-2][1]["content"] == "Streamed answer"
        steps = [data["step"]["step_name"] for name, data in events if name == "progress"]
        assert "Identifying variables..." in steps

    def test_cancel_without_turn(self, client, loaded_workspace):
        response = client.post(f"/api/v1/workspaces/{loaded_workspace}/chat/cancel")
        assert response.json() == {"cancelled": False}


class TestSettings:
    def test_persona_catalog(self, client):
        body = client.get("/api/v1/settings/personas").json()
        ids = [p["id"] for p in body["personas"]]
        assert ids == ["development_economist", "policy_briefing", "data_extractor", "custom"]
        assert body["models"]

    def test_update_persona_rebuilds(self, client, provider, loaded_workspace):
        url = f"/api/v1/workspaces/{loaded_workspace}/settings"
        before = client.get(url).json()
        assert before["rebuilds"] == 1

        response = client.put(url, json={"persona": "policy_briefing", "main_model": "gemini-2.5-pro"})
        assert response.status_code == 200
        body = response.json()
        assert body["persona"] == "policy_briefing"
        assert body["main_model"] == "gemini-2.5-pro"
        assert body["rebuilds"] == 3
        assert provider.chats[-1].model == "gemini-2.5-pro"
        assert provider.chats[-1].system_instruction.startswith("You are a policy analyst")

    def test_unknown_persona_is_400(self, client, loaded_workspace):
        response = client.put(
            f"/api/v1/workspaces/{loaded_workspace}/settings", json={"persona": "poet"}
        )
        assert response.status_code == 400
