"""Tests for the codex-skills CLI."""

import json
from pathlib import Path

import httpx
import pytest
from click.testing import CliRunner

from codex_skill_manager import config
from codex_skill_manager.cli import cli
from codex_skill_manager.platforms import SkillPlatform
from codex_skill_manager.remote.client import RemoteSkillClient


@pytest.fixture
def runner(data_dir: Path) -> CliRunner:
    return CliRunner(env={"CODEX_SKILL_MANAGER_DATA_DIR": str(data_dir)})


@pytest.fixture
def populated_home(mock_home: Path, make_skill) -> Path:
    make_skill(SkillPlatform.CODEX.root(mock_home), "pdf-tools", description="Work with PDFs", references=["api.md"])
    make_skill(SkillPlatform.CLAUDE.root(mock_home), "pdf-tools", description="Work with PDFs")
    make_skill(SkillPlatform.CLAUDE.root(mock_home), "commit-helper", description="Writes commits")
    return mock_home


@pytest.fixture
def registry(monkeypatch, skill_zip: Path, extractor):
    """Route registry calls to an in-memory handler and extract in-process."""
    archive = skill_zip.read_bytes()

    def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path == "/api/v1/skills":
            return httpx.Response(200, json={"items": [
                {"slug": "pdf-tools", "displayName": "PDF Tools", "summary": "Work with PDFs",
                 "latestVersion": {"version": "1.0.0"}, "updatedAt": 1700000000000},
            ]})
        if path == "/api/v1/search":
            return httpx.Response(200, json={"results": [
                {"slug": "pdf-tools", "displayName": "PDF Tools", "version": "1.0.0"},
            ]})
        if path == "/api/v1/skills/pdf-tools":
            return httpx.Response(200, json={"latestVersion": {"version": "1.0.0"}})
        if path == "/api/skill":
            return httpx.Response(200, json={"owner": {"handle": "jane", "displayName": "Jane"}})
        if path == "/api/v1/download":
            return httpx.Response(200, content=archive)
        return httpx.Response(404)

    def remote_client(settings, **kwargs):
        return RemoteSkillClient(base_url=settings.registry_url, transport=httpx.MockTransport(handler))

    def skill_store(settings, **kwargs):
        return config.build_skill_store(settings, extractor=extractor, **kwargs)

    monkeypatch.setattr("codex_skill_manager.cli.build_remote_client", remote_client)
    monkeypatch.setattr("codex_skill_manager.cli.build_skill_store", skill_store)
    return handler


def test_version(runner: CliRunner):
    result = runner.invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert "1.0.0" in result.output


class TestLocalCommands:
    def test_scan_groups_skills(self, runner: CliRunner, populated_home: Path):
        result = runner.invoke(cli, ["--home", str(populated_home), "scan"])

        assert result.exit_code == 0, result.output
        assert "Found 3 skills (2 unique)" in result.output
        assert "Pdf Tools (pdf-tools) [codex, claude]" in result.output
        assert "Commit Helper (commit-helper) [claude]" in result.output

    def test_scan_json(self, runner: CliRunner, populated_home: Path):
        result = runner.invoke(cli, ["--home", str(populated_home), "scan", "--json"])

        assert result.exit_code == 0, result.output
        payload = json.loads(result.output)
        assert sorted(s["id"] for s in payload["skills"]) == [
            "claude-commit-helper",
            "claude-pdf-tools",
            "codex-pdf-tools",
        ]
        assert payload["errors"] == []

    def test_show_raw(self, runner: CliRunner, populated_home: Path):
        result = runner.invoke(cli, ["--home", str(populated_home), "show", "codex-pdf-tools", "--raw"])

        assert result.exit_code == 0, result.output
        assert "Use this skill." in result.output
        assert "description:" not in result.output

    def test_show_rendered(self, runner: CliRunner, populated_home: Path):
        result = runner.invoke(cli, ["--home", str(populated_home), "show", "codex-pdf-tools"])

        assert result.exit_code == 0, result.output
        assert "Pdf Tools" in result.output
        assert "1 reference" in result.output

    def test_show_unknown_id(self, runner: CliRunner, populated_home: Path):
        result = runner.invoke(cli, ["--home", str(populated_home), "show", "codex-nope"])

        assert result.exit_code == 1
        assert "❌ Error: No skill with id 'codex-nope'" in result.output

    def test_refs(self, runner: CliRunner, populated_home: Path):
        listing = runner.invoke(cli, ["--home", str(populated_home), "refs", "codex-pdf-tools"])
        assert listing.exit_code == 0, listing.output
        assert "Api (api.md)" in listing.output

        shown = runner.invoke(cli, ["--home", str(populated_home), "refs", "codex-pdf-tools", "api", "--raw"])
        assert shown.exit_code == 0, shown.output
        assert "# api.md" in shown.output

    def test_delete(self, runner: CliRunner, populated_home: Path):
        result = runner.invoke(
            cli, ["--home", str(populated_home), "delete", "claude-commit-helper", "--yes"]
        )

        assert result.exit_code == 0, result.output
        assert "Deleted claude-commit-helper" in result.output
        assert not (SkillPlatform.CLAUDE.root(populated_home) / "commit-helper").exists()

    def test_delete_unknown(self, runner: CliRunner, populated_home: Path):
        result = runner.invoke(cli, ["--home", str(populated_home), "delete", "codex-nope", "--yes"])
        assert result.exit_code == 1
        assert "Unknown skill id" in result.output

    def test_import_folder(self, runner: CliRunner, mock_home: Path, tmp_path: Path, make_skill):
        source = make_skill(tmp_path / "inbox", "handmade")

        result = runner.invoke(
            cli,
            ["--home", str(mock_home), "import", str(source), "--platform", "codex", "--platform", "claude"],
        )

        assert result.exit_code == 0, result.output
        assert (SkillPlatform.CODEX.root(mock_home) / "handmade" / "SKILL.md").is_file()
        assert (SkillPlatform.CLAUDE.root(mock_home) / "handmade" / "SKILL.md").is_file()
        assert source.exists()

    def test_import_rejects_plain_file(self, runner: CliRunner, mock_home: Path, tmp_path: Path):
        bogus = tmp_path / "notes.txt"
        bogus.write_text("x")

        result = runner.invoke(cli, ["--home", str(mock_home), "import", str(bogus), "--platform", "codex"])

        assert result.exit_code == 1
        assert "Select a folder or .zip file." in result.output


class TestPathCommands:
    def test_add_list_preview_remove(self, runner: CliRunner, mock_home: Path, tmp_path: Path, make_skill):
        team = tmp_path / "team"
        make_skill(SkillPlatform.OPENCODE.root_in(team), "shared")
        home_args = ["--home", str(mock_home)]

        preview = runner.invoke(cli, home_args + ["paths", "preview", str(team)])
        assert preview.exit_code == 0, preview.output
        assert "OpenCode (1)" in preview.output

        added = runner.invoke(cli, home_args + ["paths", "add", str(team)])
        assert added.exit_code == 0, added.output
        assert "(1 skills)" in added.output

        listed = runner.invoke(cli, home_args + ["paths", "list"])
        assert "team" in listed.output

        scanned = runner.invoke(cli, home_args + ["scan"])
        assert "📁 team" in scanned.output
        assert "Shared (shared) [opencode]" in scanned.output

        duplicate = runner.invoke(cli, home_args + ["paths", "add", str(team)])
        assert duplicate.exit_code == 1
        assert "already been added" in duplicate.output

        removed = runner.invoke(cli, home_args + ["paths", "remove", str(team)])
        assert "Removed" in removed.output
        assert "No custom paths registered." in runner.invoke(cli, home_args + ["paths", "list"]).output

    def test_add_missing_path(self, runner: CliRunner, mock_home: Path, tmp_path: Path):
        result = runner.invoke(cli, ["--home", str(mock_home), "paths", "add", str(tmp_path / "nope")])
        assert result.exit_code == 1
        assert "does not exist" in result.output


class TestRemoteCommands:
    def test_latest(self, runner: CliRunner, populated_home: Path, registry):
        result = runner.invoke(cli, ["--home", str(populated_home), "latest"])

        assert result.exit_code == 0, result.output
        assert "pdf-tools" in result.output
        assert "codex, claude" in result.output

    def test_search(self, runner: CliRunner, mock_home: Path, registry):
        result = runner.invoke(cli, ["--home", str(mock_home), "search", "pdf"])

        assert result.exit_code == 0, result.output
        assert "Found 1 skills matching 'pdf'" in result.output

    def test_install(self, runner: CliRunner, mock_home: Path, registry):
        result = runner.invoke(
            cli, ["--home", str(mock_home), "install", "pdf-tools", "--platform", "copilot"]
        )

        assert result.exit_code == 0, result.output
        assert "Installed pdf-tools v1.0.0" in result.output
        assert (SkillPlatform.COPILOT.root(mock_home) / "pdf-tools" / "SKILL.md").is_file()

    def test_install_requires_platform(self, runner: CliRunner, mock_home: Path):
        result = runner.invoke(cli, ["--home", str(mock_home), "install", "pdf-tools"])
        assert result.exit_code == 2

    def test_remote_show(self, runner: CliRunner, mock_home: Path, registry):
        result = runner.invoke(cli, ["--home", str(mock_home), "remote-show", "pdf-tools", "--raw"])

        assert result.exit_code == 0, result.output
        assert "by Jane (@jane)" in result.output
        assert "Merge and split." in result.output

    def test_remote_show_unknown(self, runner: CliRunner, mock_home: Path, registry):
        result = runner.invoke(cli, ["--home", str(mock_home), "remote-show", "nope"])
        assert result.exit_code == 1
        assert "No registry skill with slug 'nope'" in result.output
