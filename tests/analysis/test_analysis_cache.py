import unittest
from pathlib import Path
from tempfile import TemporaryDirectory
from unittest.mock import patch

from graft.analysis.analyzer import Analysis, ProjectType
from graft.analysis.cache import AnalysisCache, get_or_analyze


class TestAnalysisCache(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = TemporaryDirectory()
        self.root = Path(self._tmp.name)
        (self.root / "go.mod").write_text("module x\n", encoding="utf-8")

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_path(self) -> None:
        self.assertEqual(AnalysisCache(self.root).path, self.root / ".graft" / "analysis.json")

    def test_get_or_analyze_caches_result(self) -> None:
        first, is_new = get_or_analyze(self.root)
        self.assertTrue(is_new)
        self.assertTrue(AnalysisCache(self.root).exists())

        second, is_new = get_or_analyze(self.root)
        self.assertFalse(is_new)
        self.assertEqual(second, first)

    def test_refresh_reanalyzes(self) -> None:
        cache = AnalysisCache(self.root)
        cache.save(Analysis(type=ProjectType.FRONTEND))
        analysis, is_new = get_or_analyze(self.root, refresh=True)
        self.assertTrue(is_new)
        self.assertEqual(analysis.type, ProjectType.BACKEND)

    def test_corrupt_cache_is_a_miss(self) -> None:
        cache = AnalysisCache(self.root)
        cache.path.parent.mkdir(parents=True)
        for content in ("{broken", "[]", '{"type": "alien", "analyzed_at": "2024-01-01T00:00:00"}', '{"type": "backend"}'):
            with self.subTest(content=content):
                cache.path.write_text(content, encoding="utf-8")
                self.assertIsNone(cache.load())

    def test_save_failure_is_not_fatal(self) -> None:
        with patch.object(AnalysisCache, "save", side_effect=PermissionError("read-only")):
            analysis, is_new = get_or_analyze(self.root)
        self.assertTrue(is_new)
        self.assertEqual(analysis.languages, ["Go"])

    def test_clear(self) -> None:
        cache = AnalysisCache(self.root)
        cache.save(Analysis())
        cache.clear()
        cache.clear()
        self.assertFalse(cache.exists())


if __name__ == "__main__":
    unittest.main()
