from __future__ import annotations

import json
from datetime import timedelta

from typer.testing import CliRunner

from eventsfixer.cli import app
from eventsfixer.crud import create_event
from eventsfixer.models import User
from eventsfixer.utils import hash_token, utcnow

runner = CliRunner()


def test_no_arguments_shows_help():
    result = runner.invoke(app, [])
    assert result.exit_code == 0
    assert "validate-config" in result.output


def test_create_user_prints_token_once(session):
    result = runner.invoke(app, ["create-user", "--email", "Cli@Example.com"])
    assert result.exit_code == 0, result.output
    token = result.output.strip().splitlines()[-1]

    user = session.query(User).one()
    assert user.email == "cli@example.com"
    assert user.api_token_hash == hash_token(token)

    duplicate = runner.invoke(app, ["create-user", "--email", "cli@example.com"])
    assert duplicate.exit_code == 1


def test_validate_config_migrates_legacy_file(tmp_path):
    path = tmp_path / "page.json"
    path.write_text(
        json.dumps({"title": "Old Page", "sections": []}), encoding="utf-8"
    )

    result = runner.invoke(app, ["validate-config", str(path)])
    assert result.exit_code == 0, result.output
    migrated = json.loads(result.output)
    assert migrated["schemaVersion"] == 2
    assert migrated["hero"]["title"] == "Old Page"

    result = runner.invoke(app, ["validate-config", str(path), "--write"])
    assert result.exit_code == 0
    assert json.loads(path.read_text(encoding="utf-8"))["schemaVersion"] == 2


def test_validate_config_reports_errors(tmp_path):
    path = tmp_path / "broken.json"
    path.write_text(json.dumps({"schemaVersion": 9}), encoding="utf-8")
    assert runner.invoke(app, ["validate-config", str(path)]).exit_code == 1

    path.write_text("{not json", encoding="utf-8")
    assert runner.invoke(app, ["validate-config", str(path)]).exit_code == 1


def test_render_writes_event_html(session, organizer, tmp_path):
    user, _ = organizer
    event = create_event(
        session, owner=user, title="Porch Concert", start_time=utcnow() + timedelta(days=1)
    )
    session.commit()
    output = tmp_path / "page.html"

    result = runner.invoke(app, ["render", event.id, "--output", str(output)])
    assert result.exit_code == 0, result.output
    assert "<h1>Porch Concert</h1>" in output.read_text(encoding="utf-8")

    assert runner.invoke(app, ["render", "missing"]).exit_code == 1


def test_process_emails_with_empty_queue():
    result = runner.invoke(app, ["process-emails", "--limit", "5"])
    assert result.exit_code == 0
    assert "Sent 0 email(s)." in result.output


def test_send_reminders_with_nothing_due():
    result = runner.invoke(app, ["send-reminders"])
    assert result.exit_code == 0, result.output
    assert "Queued 0 event reminder(s) and 0 no-response reminder(s)." in result.output
