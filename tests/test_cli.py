import asyncio
import json
from unittest.mock import MagicMock

import pytest
from typer.testing import CliRunner

from form_persistence.cli import app
from form_persistence.config import PersistenceOptions
from form_persistence.models.enums import LifecycleEvent
from form_persistence.models.files import IncomingFile
from form_persistence.orchestrator import FormPersistence
from form_persistence.storage.bundle import FormStorage

runner = CliRunner()


def populate(url: str, form_id: str, close: bool = False):
    async def run():
        form = FormPersistence(
            form_id,
            {"name": ""},
            PersistenceOptions(file_fields=["cv"]),
            FormStorage.from_url(url),
        )
        await form.mount()
        await form.set_field("name", "Ada")
        await form.save_files("cv", [IncomingFile(file_name="cv.pdf", file_type="application/pdf", data=b"%PDF-1")])
        if close:
            await form.handle_lifecycle_event(LifecycleEvent.CLOSE)

    asyncio.run(run())


class TestCLI:
    @pytest.fixture(autouse=True)
    def db_url(self, tmp_path, monkeypatch):
        url = f"sqlite:///{tmp_path / 'cli.db'}"
        monkeypatch.setenv("FORM_PERSISTENCE_DATABASE_URL", url)
        monkeypatch.setattr("form_persistence.cli.setup_logging", MagicMock())
        return url

    def test_forms_empty(self):
        result = runner.invoke(app, ["forms"])
        assert result.exit_code == 0
        assert "No stored forms found." in result.output

    def test_forms_list(self, db_url):
        populate(db_url, "signup")
        populate(db_url, "survey", close=True)

        result = runner.invoke(app, ["forms"])
        assert result.exit_code == 0
        assert "[Open] signup" in result.output
        assert "[Closed] survey" in result.output
        assert "_normal_close" not in result.output

    def test_show(self, db_url):
        populate(db_url, "signup")
        result = runner.invoke(app, ["show", "signup", "--database-url", db_url])
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["formId"] == "signup"
        assert data["fields"] == {"name": "Ada"}
        assert data["savedAt"].endswith("Z")

    def test_show_missing(self):
        result = runner.invoke(app, ["show", "nope"])
        assert result.exit_code == 1
        assert "No stored data for form: nope" in result.output

    def test_files(self, db_url):
        populate(db_url, "signup")
        result = runner.invoke(app, ["files", "signup"])
        assert result.exit_code == 0
        assert "cv\tcv.pdf\tapplication/pdf\t6 bytes" in result.output

        result = runner.invoke(app, ["files", "other"])
        assert "No files found for form: other" in result.output

    def test_clear_requires_confirmation(self, db_url):
        populate(db_url, "signup")
        result = runner.invoke(app, ["clear", "signup"])
        assert result.exit_code == 1
        assert "Refusing to clear without --yes." in result.output

    def test_clear(self, db_url):
        populate(db_url, "signup", close=True)
        result = runner.invoke(app, ["clear", "signup", "--yes"])
        assert result.exit_code == 0
        assert "Cleared form: signup" in result.output

        result = runner.invoke(app, ["forms"])
        assert "No stored forms found." in result.output
        result = runner.invoke(app, ["files", "signup"])
        assert "No files found for form: signup" in result.output
