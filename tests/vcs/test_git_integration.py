import shutil
import subprocess
import unittest
from pathlib import Path
from tempfile import TemporaryDirectory

from graft.cancellation import CancellationToken
from graft.diff.models import FileStatus
from graft.vcs.git_client import GitClient, RefNotFoundError


@unittest.skipUnless(shutil.which("git"), "git executable not available")
class TestGitClientAgainstRepository(unittest.TestCase):
    """Runs the real git binary against a throwaway repository."""

    def git(self, *args: str) -> str:
        result = subprocess.run(
            ["git", *args],
            cwd=self.root,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            check=True,
        )
        return result.stdout

    def setUp(self) -> None:
        self._tmp = TemporaryDirectory()
        self.root = Path(self._tmp.name).resolve()
        self.git("init", "-q")
        self.git("config", "user.name", "Test User")
        self.git("config", "user.email", "test@example.com")
        self.git("config", "commit.gpgsign", "false")
        self.git("config", "diff.renames", "true")

        (self.root / "old.go").write_text("package x\n\nfunc A() {}\n", encoding="utf-8")
        (self.root / "notes.txt").write_text("one\n", encoding="utf-8")
        self.git("add", ".")
        self.git("commit", "-q", "-m", "base")
        self.git("tag", "base")

        self.git("mv", "old.go", "new.go")
        (self.root / "notes.txt").write_text("one\ntwo\nthree\n", encoding="utf-8")
        (self.root / "logo.bin").write_bytes(b"\x00\x01\x02\xff")
        self.git("add", ".")
        self.git("commit", "-q", "-m", "Rename and extend", "-m", "Longer explanation")

        self.client = GitClient.open(self.root)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_get_diff(self) -> None:
        result = self.client.get_diff("base", CancellationToken(timeout=60))
        by_path = {f.path: f for f in result.files}

        self.assertEqual(sorted(by_path), ["logo.bin", "new.go", "notes.txt"])
        self.assertEqual(by_path["new.go"].status, FileStatus.RENAMED)
        self.assertEqual(by_path["new.go"].old_path, "old.go")
        self.assertFalse(by_path["new.go"].is_binary)
        self.assertTrue(by_path["logo.bin"].is_binary)
        self.assertEqual(by_path["logo.bin"].status, FileStatus.ADDED)
        self.assertEqual((by_path["notes.txt"].additions, by_path["notes.txt"].deletions), (2, 0))

        self.assertEqual(len(result.commits), 1)
        commit = result.commits[0]
        self.assertEqual(commit.subject, "Rename and extend")
        self.assertEqual(commit.body, "Longer explanation")
        self.assertEqual(commit.author_email, "test@example.com")
        self.assertIsNotNone(commit.date)
        self.assertEqual(result.stats.files_changed, 3)

    def test_validate_ref(self) -> None:
        self.client.validate_ref("base")
        with self.assertRaises(RefNotFoundError):
            self.client.validate_ref("no-such-branch")

    def test_file_diff_and_root(self) -> None:
        diff = self.client.get_file_diff("base", "notes.txt")
        self.assertIn("+two", diff)
        self.assertEqual(self.client.get_root_dir().resolve(), self.root)


if __name__ == "__main__":
    unittest.main()
