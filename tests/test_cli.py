from pathlib import Path
from tempfile import TemporaryDirectory
from unittest import mock
import contextlib
import io
import unittest

from pageexport import cli
from pageexport.models import ProcessOutcome


class CliTest(unittest.TestCase):
    def test_missing_arguments_is_usage_error(self) -> None:
        stderr = io.StringIO()
        with contextlib.redirect_stderr(stderr):
            self.assertEqual(cli.main([]), 1)
        self.assertIn("No URI given", stderr.getvalue())

    def test_bad_option_exits_one_not_two(self) -> None:
        with contextlib.redirect_stderr(io.StringIO()):
            self.assertEqual(cli.main(["https://example.com", "out.pdf", "--pagesize", "B5"]), 1)

    def test_bad_config_value_is_usage_error(self) -> None:
        with TemporaryDirectory() as temp_dir:
            config_path = Path(temp_dir) / "pageexport.yaml"
            config_path.write_text("readiness: 200\n", encoding="utf-8")
            stderr = io.StringIO()
            with contextlib.redirect_stderr(stderr):
                code = cli.main(["--config", str(config_path), "https://example.com", "out.pdf"])

        self.assertEqual(code, 1)
        self.assertIn("config key `readiness`", stderr.getvalue())

    def test_outcome_becomes_exit_code(self) -> None:
        async def fake_run_job(context, session=None):
            return ProcessOutcome.TIMEOUT

        with TemporaryDirectory() as temp_dir:
            output = Path(temp_dir) / "out.pdf"
            with mock.patch.object(cli, "run_job", fake_run_job), mock.patch.object(cli, "setup_logger") as setup:
                setup.return_value = mock.Mock()
                code = cli.main(["https://example.com", str(output), "--log-file", str(Path(temp_dir) / "x.log")])

        self.assertEqual(code, 2)
        setup.assert_called_once_with(Path(temp_dir) / "x.log", verbose=False)


if __name__ == "__main__":
    unittest.main()
