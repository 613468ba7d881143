from __future__ import annotations

import os
import subprocess
import sys
import tempfile
import unittest
from pathlib import Path


class TestCLISmoke(unittest.TestCase):
    def _run(self, args: list[str]) -> subprocess.CompletedProcess[str]:
        repo_root = Path(__file__).resolve().parents[1]

        env = dict(os.environ)
        existing_pp = env.get("PYTHONPATH", "")
        env["PYTHONPATH"] = (
            f"{repo_root}{os.pathsep}{existing_pp}" if existing_pp else str(repo_root)
        )

        return subprocess.run(
            [sys.executable, "-m", "danbooru_dl", *args],
            cwd=repo_root,
            env=env,
            capture_output=True,
            text=True,
        )

    def test_help_lists_commands(self) -> None:
        proc = self._run(["--help"])
        self.assertEqual(proc.returncode, 0, msg=proc.stderr)
        self.assertIn("download", proc.stdout)
        self.assertIn("search", proc.stdout)

    def test_invalid_config_exits_with_config_code(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            cfg_path = Path(td) / "config.yaml"
            cfg_path.write_text("download:\n  workers: -1\n", encoding="utf-8")

            proc = self._run(
                ["download", "-t", "blue_sky", "-o", str(Path(td) / "out"), "--config", str(cfg_path)]
            )

            self.assertEqual(proc.returncode, 2, msg=proc.stderr)
            self.assertIn("download.workers", proc.stderr)


if __name__ == "__main__":
    unittest.main()
