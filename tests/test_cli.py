from click.testing import CliRunner

from crank.cli import main


class TestCli:
    def test_status(self, monkeypatch, tmp_path):
        monkeypatch.setattr("crank.config.SETTINGS_PATH", tmp_path / "settings.json")
        monkeypatch.setenv("ANTHROPIC_API_KEY", "test-key")
        monkeypatch.setenv("CRANK_WORKING_DIR", str(tmp_path))

        result = CliRunner().invoke(main, ["status"])

        assert result.exit_code == 0
        assert "Anthropic key: set" in result.output
        assert str(tmp_path) in result.output

    def test_bad_config_is_reported(self, monkeypatch, tmp_path):
        monkeypatch.setattr("crank.config.SETTINGS_PATH", tmp_path / "settings.json")
        monkeypatch.setenv("CRANK_CHAT_MODEL", "gpt-2")

        result = CliRunner().invoke(main, ["status"])

        assert result.exit_code == 1
        assert "Unsupported model" in result.output
