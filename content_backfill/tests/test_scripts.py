import contextlib
import importlib.util
import io
import logging
import unittest
from pathlib import Path
from unittest.mock import patch

from content_backfill.config import Settings

SCRIPTS_DIR = Path(__file__).resolve().parents[2] / "scripts"

MIGRATION_SCRIPTS = (
    "migrate_post_slugs",
    "migrate_likes",
    "backfill_public_ids",
    "migrate_blog_images",
)


def load_script(name):
    spec = importlib.util.spec_from_file_location(
        f"backfill_script_{name}", SCRIPTS_DIR / f"{name}.py"
    )
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


class ScriptMainTests(unittest.TestCase):
    """
    Calls each script's main() the way the command line does and checks the
    exit status and what reaches stderr.
    """

    def setUp(self):
        root = logging.getLogger()
        self.addCleanup(root.setLevel, root.level)

    def run_main(self, name, argv=(), settings=None):
        module = load_script(name)
        settings = settings or Settings(_env_file=None, database_url=None)
        stderr = io.StringIO()
        with patch("sys.argv", [f"{name}.py", *argv]), patch.object(
            module, "get_settings", return_value=settings
        ), patch.object(logging.getLogger(), "handlers", []), contextlib.redirect_stderr(stderr):
            status = module.main()
        return status, stderr.getvalue()

    def test_missing_database_url_exits_1(self):
        for name in MIGRATION_SCRIPTS + ("audit_indexes",):
            with self.subTest(script=name):
                status, stderr = self.run_main(name)
                self.assertEqual(status, 1)
                self.assertIn("ERROR:DATABASE_URL required", stderr)

    def test_non_positive_batch_size_exits_1(self):
        settings = Settings(_env_file=None, database_url="sqlite+pysqlite:///:memory:")

        status, stderr = self.run_main(
            "migrate_post_slugs", ["--batch-size", "0"], settings=settings
        )

        self.assertEqual(status, 1)
        self.assertIn("Batch size must be positive, got 0", stderr)


if __name__ == "__main__":
    unittest.main()
