from __future__ import annotations

import logging
from pathlib import Path

import httpx
import pytest

from apps.api.main import REQUEST_ID_HEADER, app

_ROSTER = (
    "Student Name,Email,Team\n"
    "Ada Lovelace,ada@example.com,Blue\n"
    "Alan Turing,alan@example.com,Red\n"
    "Grace Hopper,grace@example.com,Green\n"
).encode("utf-8")


def _client() -> httpx.AsyncClient:
    transport = httpx.ASGITransport(app=app)
    return httpx.AsyncClient(transport=transport, base_url="http://testserver")


@pytest.mark.anyio
async def test_healthz_returns_ok() -> None:
    async with _client() as client:
        response = await client.get("/healthz")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
    assert response.headers[REQUEST_ID_HEADER]


@pytest.mark.anyio
async def test_meta_lists_vocabulary(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("PACKET_ENABLE_META", raising=False)
    monkeypatch.setenv("PACKET_MAX_UPLOAD_BYTES", "2048")

    async with _client() as client:
        response = await client.get("/v1/meta")

    assert response.status_code == 200
    payload = response.json()
    assert payload["token_modes"] == ["snake", "legacy"]
    assert "recipient_name" in payload["system_tokens"]
    assert payload["legacy_tokens"][0] == "FirstName"
    assert payload["built_in_properties"] == [
        "FirstName",
        "LastName",
        "FullName",
        "Email",
        "PhoneNumber",
    ]
    assert "__computed__:initials" in payload["computed_targets"]
    assert payload["max_upload_bytes"] == 2048


@pytest.mark.anyio
async def test_meta_can_be_disabled(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PACKET_ENABLE_META", "0")

    async with _client() as client:
        response = await client.get("/v1/meta")

    assert response.status_code == 404
    payload = response.json()
    assert payload["error_code"] == "NOT_FOUND"
    assert payload["detail"]["request_id"] == payload["request_id"]


@pytest.mark.anyio
async def test_csv_preview_reports_columns(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO, logger="packet.api")

    async with _client() as client:
        response = await client.post(
            "/v1/csv/preview",
            files={"csv_file": ("roster.csv", _ROSTER, "text/csv")},
            data={"max_rows": "1"},
        )

    assert response.status_code == 200
    payload = response.json()
    assert [item["header"] for item in payload["headers"]] == ["Student Name", "Email", "Team"]
    assert payload["rows"] == [["Ada Lovelace", "ada@example.com", "Blue"]]
    assert payload["row_count"] == 3
    assert payload["recipient_count"] == 3
    assert payload["email_column"] == "Email"

    request_id = response.headers[REQUEST_ID_HEADER]
    messages = [record.message for record in caplog.records if record.name == "packet.api"]
    assert any('"event":"csv_preview"' in message and request_id in message for message in messages)


@pytest.mark.anyio
async def test_csv_preview_rejects_non_csv_upload() -> None:
    async with _client() as client:
        response = await client.post(
            "/v1/csv/preview",
            files={"csv_file": ("roster.txt", _ROSTER, "text/plain")},
        )

    assert response.status_code == 415
    assert response.json()["error_code"] == "INVALID_MEDIA_TYPE"


@pytest.mark.anyio
async def test_csv_preview_enforces_upload_limit(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PACKET_MAX_UPLOAD_BYTES", "16")

    async with _client() as client:
        response = await client.post(
            "/v1/csv/preview",
            files={"csv_file": ("roster.csv", _ROSTER, "text/csv")},
        )

    assert response.status_code == 413
    payload = response.json()
    assert payload["error_code"] == "UPLOAD_TOO_LARGE"
    assert payload["detail"]["max_bytes"] == 16


@pytest.mark.anyio
async def test_csv_preview_rejects_non_utf8_upload() -> None:
    async with _client() as client:
        response = await client.post(
            "/v1/csv/preview",
            files={"csv_file": ("roster.csv", b"Name\n\xff\xfe\n", "text/csv")},
        )

    assert response.status_code == 400
    assert response.json()["error_code"] == "INVALID_ENCODING"


@pytest.mark.anyio
async def test_mapping_suggest_skips_signature_fields() -> None:
    async with _client() as client:
        response = await client.post(
            "/v1/mapping/suggest",
            json={"headers": ["First Name", "Email"], "fields": ["First Name", "Signature"]},
        )

    assert response.status_code == 200
    payload = response.json()
    assert payload["mapping"] == {"First Name": "FirstName"}
    assert payload["newly_mapped"] == ["First Name"]
    assert payload["unmapped"] == ["Signature"]


@pytest.mark.anyio
async def test_mapping_suggest_rejects_invalid_json() -> None:
    async with _client() as client:
        response = await client.post(
            "/v1/mapping/suggest",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )

    assert response.status_code == 400
    payload = response.json()
    assert payload["error_code"] == "INVALID_JSON"
    assert response.headers[REQUEST_ID_HEADER] == payload["request_id"]


@pytest.mark.anyio
async def test_mapping_suggest_rejects_missing_fields() -> None:
    async with _client() as client:
        response = await client.post("/v1/mapping/suggest", json={"headers": ["Email"]})

    assert response.status_code == 400
    assert response.json()["error_code"] == "INVALID_ARGUMENT"


@pytest.mark.anyio
async def test_messages_render_uses_settings_sender(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    settings = tmp_path / "settings.yaml"
    settings.write_text("sender_name: Coach Kim\n", encoding="utf-8")
    monkeypatch.setenv("PACKET_SETTINGS_PATH", str(settings))

    async with _client() as client:
        response = await client.post(
            "/v1/messages/render",
            json={
                "csv_text": "First Name,Last Name,Email\nAda,Lovelace,ada@example.com\n",
                "subject": "{{packet_title}}",
                "body": "Hi {{first_name}}, from {{sender_name}}",
                "packet_title": "Field Trip",
            },
        )

    assert response.status_code == 200
    payload = response.json()
    assert payload["token_mode"] == "snake"
    [message] = payload["messages"]
    assert message["recipient_name"] == "Ada Lovelace"
    assert message["subject"] == "Field Trip"
    assert message["body"] == "Hi Ada, from Coach Kim"
    assert message["validation"]["unknown_tokens"] == []


@pytest.mark.anyio
async def test_messages_render_legacy_mode_override() -> None:
    async with _client() as client:
        response = await client.post(
            "/v1/messages/render",
            json={
                "csv_text": "First Name,Last Name,Email\nAda,Lovelace,ada@example.com\n",
                "subject": "For {{FullName}}",
                "body": "{{FileName}} attached",
                "token_mode": "legacy",
            },
        )

    assert response.status_code == 200
    payload = response.json()
    assert payload["token_mode"] == "legacy"
    assert payload["messages"][0]["subject"] == "For Ada Lovelace"
    assert payload["messages"][0]["body"] == "Packet.pdf attached"


@pytest.mark.anyio
async def test_messages_render_reports_config_error(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    caplog.set_level(logging.INFO, logger="packet.api")
    monkeypatch.setenv("PACKET_SETTINGS_PATH", str(tmp_path / "missing.yaml"))

    async with _client() as client:
        response = await client.post(
            "/v1/messages/render", json={"csv_text": "Email\na@example.com\n"}
        )

    assert response.status_code == 500
    payload = response.json()
    assert payload["error_code"] == "CONFIG_ERROR"
    messages = [record.message for record in caplog.records if record.name == "packet.api"]
    assert any(
        '"error_code":"CONFIG_ERROR"' in message and payload["request_id"] in message
        for message in messages
    )
