import tempfile
import unittest
from pathlib import Path

import yaml

from compose_pilot.inventory import load_project_config, save_project_config
from compose_pilot.models import ServiceDescriptor


class ProjectStoreTests(unittest.TestCase):
    def setUp(self):
        self._td = tempfile.TemporaryDirectory()
        self.dir = Path(self._td.name) / "shop"
        self.dir.mkdir()
        self.path = self.dir / "compose-pilot.yaml"

    def tearDown(self):
        self._td.cleanup()

    def test_missing_file_is_created(self):
        cfg = load_project_config(self.path)
        self.assertEqual(cfg.project_name, "shop")
        self.assertEqual(cfg.services, {})
        self.assertTrue(self.path.exists())

    def test_parse_error_is_backed_up_and_reset(self):
        self.path.write_text("services: [bad", encoding="utf-8")
        cfg = load_project_config(self.path)
        self.assertEqual(cfg.services, {})
        backups = list(self.dir.glob("compose-pilot.yaml.corrupt.*"))
        self.assertTrue(backups)
        self.assertEqual(backups[0].read_text(encoding="utf-8"), "services: [bad")

    def test_wrong_shapes_are_reset(self):
        self.path.write_text("services: [web, db]\n", encoding="utf-8")
        self.assertEqual(load_project_config(self.path).services, {})
        self.assertTrue(list(self.dir.glob("compose-pilot.yaml.corrupt.*")))

    def test_bad_entries_are_skipped(self):
        self.path.write_text(
            "project_name: shop\n"
            "services:\n"
            "  web: {port: 3000, environment: {DEBUG: true, EMPTY: null}}\n"
            "  broken: {port: 99999}\n"
            "  junk: just-a-string\n",
            encoding="utf-8",
        )
        cfg = load_project_config(self.path)
        self.assertEqual(list(cfg.services), ["web"])
        self.assertEqual(cfg.services["web"].port, 3000)
        self.assertEqual(cfg.services["web"].environment, {"DEBUG": "true", "EMPTY": ""})

    def test_save_writes_sorted_services_atomically(self):
        cfg = load_project_config(self.path)
        cfg.compose_file = "docker-compose.yml"
        cfg.services = {
            "web": ServiceDescriptor("web", port=8080, detected=True),
            "api": ServiceDescriptor("api", volumes=["data:/data"]),
        }
        save_project_config(cfg, self.path)
        self.assertFalse(self.path.with_name("compose-pilot.yaml.tmp").exists())
        data = yaml.safe_load(self.path.read_text(encoding="utf-8"))
        self.assertEqual(list(data["services"]), ["api", "web"])
        self.assertEqual(data["services"]["web"]["port"], 8080)
        self.assertNotIn("port", data["services"]["api"])
        reloaded = load_project_config(self.path)
        self.assertEqual(reloaded.compose_file, "docker-compose.yml")
        self.assertEqual(reloaded.services["api"].volumes, ["data:/data"])
        self.assertIsNotNone(reloaded.updated_on)


if __name__ == "__main__":
    unittest.main()
