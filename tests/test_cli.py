"""
CLI smoke tests.
"""
from click.testing import CliRunner

from lottery_ingest.cli import cli


class TestCli:

    def test_config_lists_poll_times(self):
        result = CliRunner().invoke(cli, ["config"])
        assert result.exit_code == 0
        assert "16:13" in result.output
        assert "18:13" in result.output

    def test_unknown_region_rejected(self):
        result = CliRunner().invoke(cli, ["test-fetch", "xx"])
        assert result.exit_code == 2

    def test_draws_requires_date(self):
        result = CliRunner().invoke(cli, ["draws"])
        assert result.exit_code == 2
