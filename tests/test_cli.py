import argparse

import httpx
import pytest

import cli
from auth import authenticate

CERTS = [
    {"id": "c1", "title": "AWS Dev", "issuer": "Amazon", "category": "cloud"},
    {"id": "c2", "title": "React Basics", "issuer": "Meta", "category": "frontend"},
]


@pytest.fixture
def fake_api(monkeypatch, mock_client):
    requests = []

    def handler(request):
        requests.append(request)
        if request.method == "DELETE":
            return httpx.Response(200, json={"message": "Certificate Deleted", "deleted": True})
        if request.url.path == "/certificates":
            return httpx.Response(200, json=CERTS)
        return httpx.Response(200, json=[])

    monkeypatch.setattr(cli, "make_client", lambda args: mock_client(handler))
    return requests


def test_parse_pairs():
    assert cli.parse_pairs(["title=AWS Dev", 'skills=["Go", "Rust"]', "note=a=b"]) == {
        "title": "AWS Dev",
        "skills": ["Go", "Rust"],
        "note": "a=b",
    }
    with pytest.raises(argparse.ArgumentTypeError):
        cli.parse_pairs(["oops"])


def test_entity_type_accepts_plurals():
    assert cli.entity_type("certificates") == "certificate"
    assert cli.entity_type("contributions-cert") == "contribution-cert"
    with pytest.raises(argparse.ArgumentTypeError):
        cli.entity_type("posters")


def test_admin_command_filters_by_facet(fake_api, capsys):
    assert cli.main(["admin", "certificates", "--facet", "category=cloud", "--view", "list"]) == 0
    out = capsys.readouterr().out
    assert "AWS Dev" in out
    assert "React Basics" not in out
    assert "category options: all, cloud, frontend" in out


def test_gallery_command_searches_everything(fake_api, capsys):
    assert cli.main(["gallery", "--query", "react", "--view", "list"]) == 0
    out = capsys.readouterr().out
    assert "React Basics" in out
    assert "1 shown" in out


def test_remove_with_yes_skips_prompt(fake_api, capsys):
    assert cli.main(["remove", "certificates", "c1", "--yes"]) == 0
    assert "Certificate Deleted" in capsys.readouterr().out
    assert [r.method for r in fake_api].count("DELETE") == 1


def test_remove_declined_sends_nothing(fake_api, monkeypatch):
    monkeypatch.setattr("builtins.input", lambda prompt: "n")
    assert cli.main(["remove", "certificates", "c1"]) == 0
    assert all(r.method == "GET" for r in fake_api)


def test_create_admin_then_authenticate(capsys):
    assert cli.main(["create-admin", "--name", "Me", "--email", "me@example.com", "--password", "pw-123"]) == 0
    assert "Created admin" in capsys.readouterr().out
    assert authenticate("me@example.com", "pw-123") is not None

    assert cli.main(["create-admin", "--name", "Me", "--email", "me@example.com", "--password", "new-pw"]) == 0
    assert authenticate("me@example.com", "new-pw") is not None
    assert authenticate("me@example.com", "pw-123") is None


def test_fields_command_lists_required_and_suggestions(capsys):
    assert cli.main(["fields", "internships"]) == 0
    out = capsys.readouterr().out.splitlines()
    assert "company (required)" in out
    assert "mode - suggested: Remote, Onsite, Hybrid" in out
    assert "skills" in out


def test_admin_show_downloads_image(monkeypatch, mock_client, tmp_path, capsys):
    records = [{"id": "c1", "title": "AWS Dev", "category": "cloud", "image": "/uploads/aws.png"}]

    def handler(request):
        if request.url.path == "/uploads/aws.png":
            return httpx.Response(200, content=b"png bytes", headers={"content-type": "image/png"})
        return httpx.Response(200, json=records)

    monkeypatch.setattr(cli, "make_client", lambda args: mock_client(handler))
    assert cli.main(["admin", "certificates", "--show", "c1", "--download", str(tmp_path)]) == 0
    assert "Saved image to" in capsys.readouterr().out
    assert (tmp_path / "aws-dev-certificate.png").read_bytes() == b"png bytes"


def test_download_without_show_is_a_usage_error(fake_api):
    with pytest.raises(SystemExit):
        cli.main(["admin", "certificates", "--download", "."])


def test_remove_prompt_accepts_yes(fake_api, monkeypatch, capsys):
    monkeypatch.setattr("builtins.input", lambda prompt: "y")
    assert cli.main(["remove", "certificates", "c1"]) == 0
    assert [r.method for r in fake_api].count("DELETE") == 1
