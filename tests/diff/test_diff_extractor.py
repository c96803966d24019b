import unittest
from datetime import datetime, timedelta, timezone

from graft.diff.diff_extractor import (
    COMMIT_DELIMITER,
    build_diff_result,
    normalize_rename_path,
    parse_commits,
    parse_name_status,
    parse_numstat,
)
from graft.diff.models import FileChange, FileStatus


def log_entry(*fields: str) -> str:
    return COMMIT_DELIMITER.join(fields) + COMMIT_DELIMITER


class TestNormalizeRenamePath(unittest.TestCase):
    def test_plain_path_unchanged(self) -> None:
        self.assertEqual(normalize_rename_path("src/app.py"), "src/app.py")

    def test_simple_rename(self) -> None:
        self.assertEqual(normalize_rename_path("old.go => new.go"), "new.go")

    def test_brace_rename(self) -> None:
        self.assertEqual(normalize_rename_path("internal/{auth => login}/handler.go"), "internal/login/handler.go")

    def test_brace_rename_with_empty_new_half(self) -> None:
        self.assertEqual(normalize_rename_path("a/{b => }/c.go"), "a/c.go")

    def test_brace_rename_with_empty_old_half(self) -> None:
        self.assertEqual(normalize_rename_path("a/{ => b}/c.go"), "a/b/c.go")

    def test_brace_rename_of_file_name(self) -> None:
        self.assertEqual(normalize_rename_path("pkg/{old.go => new.go}"), "pkg/new.go")


class TestParseNumstat(unittest.TestCase):
    def test_counts_and_binary_marker(self) -> None:
        output = "10\t5\tfile.go\n-\t-\timage.png\n"
        self.assertEqual(parse_numstat(output), {"file.go": (10, 5), "image.png": (0, 0)})

    def test_short_and_malformed_lines_are_skipped(self) -> None:
        output = "garbage\n3\t1\n7\tx\tnotes.md\n"
        self.assertEqual(parse_numstat(output), {"notes.md": (7, 0)})

    def test_rename_entries_use_canonical_path(self) -> None:
        output = "0\t0\told.go => new.go\n2\t1\tsrc/{a => b}/x.py\n"
        self.assertEqual(parse_numstat(output), {"new.go": (0, 0), "src/b/x.py": (2, 1)})

    def test_empty_output(self) -> None:
        self.assertEqual(parse_numstat(""), {})


class TestParseNameStatus(unittest.TestCase):
    def test_modified_file_with_counts(self) -> None:
        files, stats = parse_name_status("M\tfile.go\n", parse_numstat("10\t5\tfile.go\n"))
        self.assertEqual(
            files,
            [FileChange(path="file.go", status=FileStatus.MODIFIED, additions=10, deletions=5, is_binary=False)],
        )
        self.assertEqual((stats.files_changed, stats.additions, stats.deletions), (1, 10, 5))

    def test_pure_rename_is_not_binary(self) -> None:
        files, _ = parse_name_status("R100\told.go\tnew.go\n", parse_numstat("0\t0\told.go => new.go\n"))
        self.assertEqual(len(files), 1)
        change = files[0]
        self.assertEqual(change.path, "new.go")
        self.assertEqual(change.old_path, "old.go")
        self.assertEqual(change.status, FileStatus.RENAMED)
        self.assertFalse(change.is_binary)

    def test_arrow_in_file_name_is_kept(self) -> None:
        files, _ = parse_name_status("M\tnotes/a => b.txt\n", {})
        self.assertEqual([f.path for f in files], ["notes/a => b.txt"])
        self.assertEqual(files[0].status, FileStatus.MODIFIED)

    def test_binary_file(self) -> None:
        files, _ = parse_name_status("A\tlogo.png\n", parse_numstat("-\t-\tlogo.png\n"))
        self.assertTrue(files[0].is_binary)
        self.assertEqual(files[0].status, FileStatus.ADDED)

    def test_deleted_empty_file_is_not_binary(self) -> None:
        files, _ = parse_name_status("D\tempty.txt\n", {"empty.txt": (0, 0)})
        self.assertFalse(files[0].is_binary)

    def test_missing_numstat_entry_defaults_to_zero(self) -> None:
        files, stats = parse_name_status("M\tmissing.py\n", {})
        self.assertEqual((files[0].additions, files[0].deletions), (0, 0))
        self.assertFalse(files[0].is_binary)
        self.assertEqual(stats.files_changed, 1)

    def test_copy_is_added_under_new_path(self) -> None:
        files, _ = parse_name_status("C75\tsrc/a.py\tsrc/b.py\n", {"src/b.py": (4, 0)})
        self.assertEqual(files[0].path, "src/b.py")
        self.assertEqual(files[0].status, FileStatus.ADDED)
        self.assertEqual(files[0].old_path, "")

    def test_rename_without_pair_falls_back_to_single_path(self) -> None:
        files, _ = parse_name_status("R100\tonly.go\n", {})
        self.assertEqual(files[0].path, "only.go")
        self.assertEqual(files[0].old_path, "")
        self.assertEqual(files[0].status, FileStatus.RENAMED)

    def test_unknown_code_is_modified(self) -> None:
        files, _ = parse_name_status("T\tlink\n", {})
        self.assertEqual(files[0].status, FileStatus.MODIFIED)

    def test_status_mapping_and_totals(self) -> None:
        name_status = "A\tnew.py\nM\tmod.py\nD\tgone.py\n"
        numstat = parse_numstat("5\t0\tnew.py\n3\t2\tmod.py\n0\t9\tgone.py\n")
        files, stats = parse_name_status(name_status, numstat)
        self.assertEqual([f.status for f in files], [FileStatus.ADDED, FileStatus.MODIFIED, FileStatus.DELETED])
        self.assertEqual((stats.files_changed, stats.additions, stats.deletions), (3, 8, 11))

    def test_blank_and_malformed_lines_are_skipped(self) -> None:
        files, stats = parse_name_status("\nM\n\tx\nM\tok.py\n", {})
        self.assertEqual([f.path for f in files], ["ok.py"])
        self.assertEqual(stats.files_changed, 1)

    def test_paths_are_unique(self) -> None:
        files, stats = parse_name_status("M\ta.py\nM\ta.py\n", {"a.py": (1, 1)})
        self.assertEqual(len(files), 1)
        self.assertEqual(stats.additions, 1)


class TestParseCommits(unittest.TestCase):
    def test_parses_fields_and_body(self) -> None:
        output = "\n".join(
            [
                log_entry("a" * 40, "aaaaaaa", "Ada", "ada@example.com", "2024-01-15T10:30:00+01:00", "Add parser", "Body line"),
                log_entry("b" * 40, "bbbbbbb", "Bob", "bob@example.com", "2024-01-16T08:00:00Z", "Fix bug", ""),
            ]
        )
        commits = parse_commits(output)
        self.assertEqual(len(commits), 2)
        first, second = commits
        self.assertEqual(first.hash, "a" * 40)
        self.assertEqual(first.short_hash, "aaaaaaa")
        self.assertEqual(first.author, "Ada")
        self.assertEqual(first.author_email, "ada@example.com")
        self.assertEqual(first.date, datetime(2024, 1, 15, 10, 30, tzinfo=timezone(timedelta(hours=1))))
        self.assertEqual(first.message, "Add parser\n\nBody line")
        self.assertEqual(second.date, datetime(2024, 1, 16, 8, 0, tzinfo=timezone.utc))
        self.assertEqual(second.message, "Fix bug")

    def test_alternate_date_format(self) -> None:
        commits = parse_commits(log_entry("c" * 40, "ccccccc", "C", "c@x", "2024-02-01 12:00:00 +0000", "s", ""))
        self.assertEqual(commits[0].date, datetime(2024, 2, 1, 12, 0, tzinfo=timezone.utc))

    def test_unparseable_date_is_none(self) -> None:
        commits = parse_commits(log_entry("d" * 40, "ddddddd", "D", "d@x", "yesterday", "s", ""))
        self.assertIsNone(commits[0].date)

    def test_short_entries_are_skipped(self) -> None:
        output = log_entry("e" * 40, "eeeeeee", "E") + "\n" + log_entry("f" * 40, "fffffff", "F", "f@x", "", "ok", "")
        commits = parse_commits(output)
        self.assertEqual([c.short_hash for c in commits], ["fffffff"])

    def test_multiline_body(self) -> None:
        commits = parse_commits(log_entry("1" * 40, "1111111", "A", "a@x", "", "Subject", "line one\nline two\n"))
        self.assertEqual(commits[0].body, "line one\nline two")

    def test_empty_output(self) -> None:
        self.assertEqual(parse_commits(""), [])


class TestBuildDiffResult(unittest.TestCase):
    def test_assembles_result(self) -> None:
        result = build_diff_result(
            "main",
            "10\t5\tfile.go\n",
            "M\tfile.go\n",
            log_entry("a" * 40, "aaaaaaa", "A", "a@x", "", "Change", ""),
        )
        self.assertEqual(result.base_ref, "main")
        self.assertEqual(result.head_ref, "HEAD")
        self.assertEqual(result.paths(), ["file.go"])
        self.assertEqual(result.commit_hashes(), ["a" * 40])
        self.assertEqual(result.stats.additions, 10)


if __name__ == "__main__":
    unittest.main()
