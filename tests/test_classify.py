import tempfile
import unittest
from pathlib import Path

from compose_pilot.classify import (
    classify,
    classify_one,
    discover,
    environment_tag,
    priority_score,
    rank,
    select_candidate,
)
from compose_pilot.models import ENVIRONMENT_TAGS, TopologyFileCandidate

TWO_SERVICES = """\
services:
  web:
    image: nginx
  db:
    image: postgres
"""

ONE_SERVICE = """\
services:
  web:
    image: nginx
"""


def _touch(root: Path, rel: str, text: str) -> Path:
    p = root / rel
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(text, encoding="utf-8")
    return p


class ScoringTests(unittest.TestCase):
    def test_score_terms(self):
        self.assertEqual(priority_score(0, True, 2), -2)
        self.assertEqual(priority_score(1, False, 1), 10 + 5 - 1)
        self.assertEqual(priority_score(0, True, 0), 20)

    def test_shallower_is_strictly_better(self):
        for primary in (True, False):
            for count in (0, 1, 7):
                self.assertLess(priority_score(1, primary, count), priority_score(2, primary, count))

    def test_environment_tags(self):
        self.assertEqual(environment_tag("docker-compose.dev.yml"), "dev")
        self.assertEqual(environment_tag("docker-compose.development.yml"), "dev")
        self.assertEqual(environment_tag("docker-compose.production.yaml"), "prod")
        self.assertEqual(environment_tag("compose.Testing.yml"), "test")
        self.assertEqual(environment_tag("compose-staging.yml"), "staging")
        self.assertEqual(environment_tag("compose.local.yml"), "local")
        self.assertEqual(environment_tag("docker-compose.override.yml"), "override")
        self.assertEqual(environment_tag("docker-compose.yml"), "none")
        for name in ("compose.yaml", "compose.qa.yml", "docker-compose-prod.yaml"):
            self.assertIn(environment_tag(name), ENVIRONMENT_TAGS)

    def test_ties_break_on_relative_path(self):
        a = TopologyFileCandidate(path="/r/b/compose.yml", relative_path="b/compose.yml", depth=1, priority_score=9)
        b = TopologyFileCandidate(path="/r/a/compose.yml", relative_path="a/compose.yml", depth=1, priority_score=9)
        c = TopologyFileCandidate(path="/r/compose.yml", relative_path="compose.yml", depth=0, priority_score=-1)
        self.assertEqual([x.relative_path for x in rank([a, b, c])], ["compose.yml", "a/compose.yml", "b/compose.yml"])


class ClassifyTests(unittest.TestCase):
    def setUp(self):
        self._td = tempfile.TemporaryDirectory()
        self.root = Path(self._td.name)

    def tearDown(self):
        self._td.cleanup()

    def test_root_primary_beats_nested_variant(self):
        _touch(self.root, "docker-compose.yml", TWO_SERVICES)
        _touch(self.root, "sub/docker-compose.dev.yml", ONE_SERVICE)
        ranked = discover(self.root, 3)
        self.assertEqual([c.relative_path for c in ranked], ["docker-compose.yml", "sub/docker-compose.dev.yml"])
        first, second = ranked
        self.assertTrue(first.is_primary)
        self.assertEqual(first.service_names, ("web", "db"))
        self.assertEqual(first.depth, 0)
        self.assertEqual(first.environment_tag, "none")
        self.assertFalse(second.is_primary)
        self.assertEqual(second.environment_tag, "dev")
        self.assertEqual(second.depth, 1)
        self.assertEqual(second.directory, "sub")
        self.assertLess(first.priority_score, second.priority_score)

    def test_malformed_file_is_kept_with_no_services(self):
        bad = _touch(self.root, "compose.yml", "services: [unclosed\n  - : :")
        (cand,) = classify([bad], root=self.root)
        self.assertEqual(cand.service_names, ())
        self.assertEqual(cand.priority_score, 20)
        self.assertGreater(cand.size_bytes, 0)
        self.assertIsNotNone(cand.modified_at)

    def test_services_must_be_a_mapping(self):
        p = _touch(self.root, "compose.yml", "services:\n  - web\n  - db\n")
        self.assertEqual(classify_one(p, self.root).service_names, ())
        p.write_text("just a string\n", encoding="utf-8")
        self.assertEqual(classify_one(p, self.root).service_names, ())

    def test_missing_file_still_yields_candidate(self):
        cand = classify_one(self.root / "gone" / "compose.yml", self.root)
        self.assertEqual(cand.relative_path, "gone/compose.yml")
        self.assertEqual(cand.size_bytes, 0)
        self.assertIsNone(cand.modified_at)
        self.assertEqual(cand.service_names, ())

    def test_more_services_win_a_tie(self):
        _touch(self.root, "a/compose.yml", ONE_SERVICE)
        _touch(self.root, "b/compose.yml", TWO_SERVICES)
        ranked = discover(self.root, 2)
        self.assertEqual([c.relative_path for c in ranked], ["b/compose.yml", "a/compose.yml"])

    def test_repeated_runs_are_identical(self):
        _touch(self.root, "docker-compose.yml", TWO_SERVICES)
        _touch(self.root, "x/compose.prod.yaml", ONE_SERVICE)
        _touch(self.root, "y/compose.yml", "")
        self.assertEqual(discover(self.root, 3), discover(self.root, 3))

    def test_select_candidate(self):
        _touch(self.root, "docker-compose.yml", TWO_SERVICES)
        _touch(self.root, "sub/docker-compose.dev.yml", ONE_SERVICE)
        ranked = discover(self.root, 3)
        self.assertIs(select_candidate(ranked), ranked[0])
        self.assertIs(select_candidate(ranked, 1), ranked[1])
        with self.assertRaises(IndexError):
            select_candidate(ranked, 2)
        self.assertIsNone(select_candidate([]))


if __name__ == "__main__":
    unittest.main()
