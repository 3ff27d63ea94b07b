from __future__ import annotations

import json
import zipfile
from collections.abc import Mapping
from pathlib import Path

from typer.testing import CliRunner

from apps.cli.main import app
from core.messages.models import MessageTemplate
from core.pdf.models import PDFField
from core.state.models import AppState, PacketTemplate
from core.state.store import JsonStateStore

_ROSTER = (
    "Student Name,Email,Team\n"
    "Ada Lovelace,ada@example.com,Blue\n"
    "Alan Turing,alan@example.com,Red\n"
    "Grace Hopper,grace@example.com,Green\n"
)


def _write_roster(tmp_path: Path) -> Path:
    path = tmp_path / "roster.csv"
    path.write_text(_ROSTER, encoding="utf-8")
    return path


def test_preview_csv_prints_json(tmp_path: Path) -> None:
    runner = CliRunner()

    result = runner.invoke(app, ["preview-csv", "--csv", str(_write_roster(tmp_path))])

    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    assert [item["header"] for item in payload["headers"]] == ["Student Name", "Email", "Team"]
    assert payload["headers"][1]["hint"] == "email"
    assert payload["email_column"] == "Email"
    assert payload["display_name_column"] == "Student Name"
    assert payload["recipient_count"] == 3


def test_preview_csv_writes_report_and_summary(tmp_path: Path) -> None:
    runner = CliRunner()
    out = tmp_path / "out" / "preview.json"

    result = runner.invoke(
        app,
        ["preview-csv", "--csv", str(_write_roster(tmp_path)), "--max-rows", "1", "--out", str(out)],
    )

    assert result.exit_code == 0
    assert "csv_preview:" in result.stdout
    assert "email_column: Email" in result.stdout
    assert len(json.loads(out.read_text(encoding="utf-8"))["rows"]) == 1


def test_preview_csv_missing_file_exits_1(tmp_path: Path) -> None:
    runner = CliRunner()

    result = runner.invoke(app, ["preview-csv", "--csv", str(tmp_path / "missing.csv")])

    assert result.exit_code == 1
    assert "ERROR: unable to read CSV" in result.stdout


def test_automap_extends_existing_mapping(tmp_path: Path) -> None:
    runner = CliRunner()
    fields = tmp_path / "fields.txt"
    fields.write_text("Student Name\nParent Email\nSignature\nInitials\n", encoding="utf-8")
    mapping = tmp_path / "mapping.json"
    mapping.write_text(json.dumps({"Signature": "Student Name", "Old": "Removed"}), encoding="utf-8")
    out = tmp_path / "mapping.out.json"

    result = runner.invoke(
        app,
        [
            "automap",
            "--csv",
            str(_write_roster(tmp_path)),
            "--fields",
            str(fields),
            "--mapping",
            str(mapping),
            "--out",
            str(out),
        ],
    )

    assert result.exit_code == 0
    payload = json.loads(out.read_text(encoding="utf-8"))
    assert payload["mapping"] == {
        "Signature": "Student Name",
        "Parent Email": "Email",
        "Initials": "__computed__:initials",
    }
    assert payload["newly_mapped"] == ["Parent Email", "Initials"]
    assert payload["unmapped"] == ["Student Name"]
    assert "mapping_summary:" in result.stdout


def test_automap_accepts_json_field_list(tmp_path: Path) -> None:
    runner = CliRunner()
    fields = tmp_path / "fields.json"
    fields.write_text(json.dumps(["FirstName", "Email"]), encoding="utf-8")

    result = runner.invoke(
        app, ["automap", "--csv", str(_write_roster(tmp_path)), "--fields", str(fields)]
    )

    assert result.exit_code == 0
    assert json.loads(result.stdout)["mapping"] == {"FirstName": "FirstName", "Email": "Email"}


def test_automap_rejects_invalid_fields_json(tmp_path: Path) -> None:
    runner = CliRunner()
    fields = tmp_path / "fields.json"
    fields.write_text("[1, 2", encoding="utf-8")

    result = runner.invoke(
        app, ["automap", "--csv", str(_write_roster(tmp_path)), "--fields", str(fields)]
    )

    assert result.exit_code == 1
    assert "Invalid fields JSON" in result.stdout


def test_render_message_prints_per_recipient(tmp_path: Path) -> None:
    runner = CliRunner()
    settings = tmp_path / "settings.yaml"
    settings.write_text("sender_name: Coach\n", encoding="utf-8")

    result = runner.invoke(
        app,
        [
            "render-message",
            "--csv",
            str(_write_roster(tmp_path)),
            "--subject",
            "{{packet_title}} for {{recipient_name}}",
            "--body",
            "Team {{team}} from {{sender_name}} {{mystery}}",
            "--packet-title",
            "Field Trip",
            "--settings",
            str(settings),
        ],
    )

    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    assert len(payload) == 3
    assert payload[0]["subject"] == "Field Trip for Ada Lovelace"
    assert payload[0]["body"] == "Team Blue from Coach {{mystery}}"
    assert payload[0]["validation"]["unknown_tokens"] == ["mystery"]


def test_render_message_bad_settings_exits_1(tmp_path: Path) -> None:
    runner = CliRunner()
    settings = tmp_path / "settings.yaml"
    settings.write_text("token_mode: pascal\n", encoding="utf-8")

    result = runner.invoke(
        app,
        [
            "render-message",
            "--csv",
            str(_write_roster(tmp_path)),
            "--subject",
            "s",
            "--body",
            "b",
            "--settings",
            str(settings),
        ],
    )

    assert result.exit_code == 1
    assert "Invalid settings schema" in result.stdout


def test_zip_command_writes_archive(tmp_path: Path) -> None:
    runner = CliRunner()
    source = tmp_path / "bundle"
    (source / "Ada").mkdir(parents=True)
    (source / "Ada" / "Packet.pdf").write_bytes(b"%PDF")
    (source / "Summary.csv").write_text("x", encoding="utf-8")
    out = tmp_path / "bundle.zip"

    result = runner.invoke(app, ["zip", "--source", str(source), "--out", str(out)])

    assert result.exit_code == 0
    assert "INFO: wrote 2 entries" in result.stdout
    with zipfile.ZipFile(out) as archive:
        assert archive.namelist() == ["Ada/Packet.pdf", "Summary.csv"]


def test_zip_command_missing_source_exits_1(tmp_path: Path) -> None:
    runner = CliRunner()

    result = runner.invoke(
        app, ["zip", "--source", str(tmp_path / "missing"), "--out", str(tmp_path / "x.zip")]
    )

    assert result.exit_code == 1


def test_zip_command_export_error_exits_2(tmp_path: Path) -> None:
    runner = CliRunner()
    source = tmp_path / "bundle"
    source.mkdir()
    out_dir = tmp_path / "taken.zip"
    out_dir.mkdir()

    result = runner.invoke(app, ["zip", "--source", str(source), "--out", str(out_dir)])

    assert result.exit_code == 2
    assert "InvalidDestinationError" in result.stdout


def test_automap_reads_headers_of_header_only_csv(tmp_path: Path) -> None:
    runner = CliRunner()
    csv_path = tmp_path / "headers.csv"
    csv_path.write_text("Student Name,Email\n", encoding="utf-8")
    fields = tmp_path / "fields.txt"
    fields.write_text("Student Name\n", encoding="utf-8")

    result = runner.invoke(app, ["automap", "--csv", str(csv_path), "--fields", str(fields)])

    assert result.exit_code == 0
    assert json.loads(result.stdout)["mapping"] == {"Student Name": "Student Name"}


def test_zip_command_accepts_archive_inside_source(tmp_path: Path) -> None:
    runner = CliRunner()
    source = tmp_path / "bundle"
    source.mkdir()
    (source / "a.txt").write_text("a", encoding="utf-8")
    out = source / "bundle.zip"

    for _ in range(2):
        result = runner.invoke(app, ["zip", "--source", str(source), "--out", str(out)])
        assert result.exit_code == 0

    with zipfile.ZipFile(out) as archive:
        assert archive.namelist() == ["a.txt"]


class StampEngine:
    """Appends the filled values to the template bytes."""

    def extract_fields(self, pdf_bytes: bytes) -> list[PDFField]:
        return []

    def fill_fields(self, pdf_bytes: bytes, values: Mapping[str, str]) -> bytes:
        return pdf_bytes + json.dumps(dict(values), sort_keys=True).encode("utf-8")

    def flatten(self, pdf_bytes: bytes) -> bytes:
        return pdf_bytes


def _write_state(tmp_path: Path) -> Path:
    pdf = tmp_path / "trip.pdf"
    pdf.write_bytes(b"%PDF")
    template = PacketTemplate(
        name="Field Trip",
        pdf_file_path=str(pdf),
        fields=[PDFField(name="Student")],
        field_mappings={"Student": "FirstName"},
        message_template=MessageTemplate(
            subject="{{packet_title}}", body="Hi {{first_name}}", is_enabled=True
        ),
    )
    path = tmp_path / "state.json"
    JsonStateStore(path).save(AppState(packet_template=template))
    return path


def test_export_command_writes_bundle_zip_and_send_logs(tmp_path: Path) -> None:
    runner = CliRunner()
    state_path = _write_state(tmp_path)
    csv_path = tmp_path / "people.csv"
    csv_path.write_text(
        "First Name,Last Name,Email\nAda,Lovelace,ada@example.com\nAlan,Turing,alan@example.com\n",
        encoding="utf-8",
    )
    out_dir = tmp_path / "exports"

    result = runner.invoke(
        app,
        [
            "export",
            "--state",
            str(state_path),
            "--engine",
            f"{__name__}:StampEngine",
            "--csv",
            str(csv_path),
            "--out-dir",
            str(out_dir),
            "--zip",
        ],
    )

    assert result.exit_code == 0, result.stdout
    assert "INFO: exported 2 packets" in result.stdout
    [bundle_dir] = [path for path in out_dir.iterdir() if path.is_dir()]
    [archive_path] = list(out_dir.glob("*.zip"))
    assert archive_path.name == f"{bundle_dir.name}.zip"

    with zipfile.ZipFile(archive_path) as archive:
        names = archive.namelist()
        messages = sorted(
            archive.read(name).decode("utf-8") for name in names if name.endswith("/Message.txt")
        )
    assert "Summary.csv" in names
    assert sum(name.endswith("/Packet.pdf") for name in names) == 2
    assert messages == [
        "Subject: Field Trip\n\nHi Ada",
        "Subject: Field Trip\n\nHi Alan",
    ]

    saved = JsonStateStore(state_path).load()
    assert [recipient.first_name for recipient in saved.recipients] == ["Ada", "Alan"]
    assert saved.csv_import is not None
    assert saved.csv_import.headers == ["First Name", "Last Name", "Email"]
    assert [log.recipient_name for log in saved.send_logs] == ["Ada Lovelace", "Alan Turing"]
    assert {log.output_file_name for log in saved.send_logs} == {archive_path.name}


def test_export_command_rejects_bad_engine_reference(tmp_path: Path) -> None:
    runner = CliRunner()
    state_path = _write_state(tmp_path)

    result = runner.invoke(
        app,
        [
            "export",
            "--state",
            str(state_path),
            "--engine",
            "not-a-reference",
            "--csv",
            str(_write_roster(tmp_path)),
        ],
    )

    assert result.exit_code == 1
    assert "module:attribute" in result.stdout


def test_export_command_requires_template_in_state(tmp_path: Path) -> None:
    runner = CliRunner()

    result = runner.invoke(
        app,
        ["export", "--state", str(tmp_path / "missing.json"), "--engine", f"{__name__}:StampEngine"],
    )

    assert result.exit_code == 1
    assert "state has no packet template" in result.stdout
