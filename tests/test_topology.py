import tempfile
import unittest
from pathlib import Path

from compose_pilot.topology import (
    TOPOLOGY_ERRORS,
    analyze_topology,
    detect_services,
    extract_port,
    normalize_environment,
    service_names,
    should_enable_backup,
    validate_topology,
)

COMPOSE = """\
services:
  web:
    image: nginx
    ports:
      - "127.0.0.1:8080:80"
      - "8443:443"
    healthcheck:
      test: ["CMD", "curl", "-f", "http://localhost"]
    volumes:
      - ./html:/usr/share/nginx/html
      - type: volume
        source: cache
        target: /var/cache/nginx
    environment:
      DEBUG: true
      WORKERS: 4
      RATIO: 0.5
      EMPTY:
      NAME: web
  db:
    image: postgres
    healthcheck:
      disable: true
    environment:
      - POSTGRES_USER=app
      - POSTGRES_PASSWORD
  worker:
    image: busybox
"""


class TopologyTests(unittest.TestCase):
    def setUp(self):
        self._td = tempfile.TemporaryDirectory()
        self.path = Path(self._td.name) / "docker-compose.yml"
        self.path.write_text(COMPOSE, encoding="utf-8")

    def tearDown(self):
        self._td.cleanup()

    def test_service_names_keep_file_order(self):
        self.assertEqual(service_names(self.path), ["web", "db", "worker"])

    def test_detect_services(self):
        services = detect_services(self.path)
        self.assertEqual(list(services), ["web", "db", "worker"])

        web = services["web"]
        self.assertEqual(web.port, 8080)
        self.assertTrue(web.detected)
        self.assertTrue(web.health_check_enabled)
        self.assertEqual(web.description, "Auto-detected web service")
        self.assertEqual(web.volumes, ["./html:/usr/share/nginx/html", "cache:/var/cache/nginx"])
        self.assertEqual(web.environment, {
            "DEBUG": "true", "WORKERS": "4", "RATIO": "0.5", "EMPTY": "", "NAME": "web",
        })
        for value in web.environment.values():
            self.assertIsInstance(value, str)

        db = services["db"]
        self.assertIsNone(db.port)
        self.assertFalse(db.health_check_enabled)
        self.assertTrue(db.backup_enabled)
        self.assertEqual(db.environment, {"POSTGRES_USER": "app", "POSTGRES_PASSWORD": ""})

        worker = services["worker"]
        self.assertEqual(worker.volumes, [])
        self.assertEqual(worker.environment, {})
        self.assertFalse(worker.backup_enabled)

    def test_unparseable_file_detects_nothing(self):
        self.path.write_text("services: {web: [", encoding="utf-8")
        self.assertEqual(detect_services(self.path), {})
        self.assertEqual(service_names(self.path), [])

    def test_missing_file_detects_nothing(self):
        self.assertEqual(detect_services(self.path.with_name("nope.yml")), {})


class PortExtractionTests(unittest.TestCase):
    def test_short_syntax(self):
        self.assertEqual(extract_port({"ports": ["3000:3000"]}), 3000)
        self.assertEqual(extract_port({"ports": ["0.0.0.0:5433:5432/tcp"]}), 5433)
        self.assertEqual(extract_port({"ports": ["9000-9001:9000-9001"]}), 9000)
        self.assertEqual(extract_port({"ports": ["6379"]}), 6379)
        self.assertEqual(extract_port({"ports": [5000]}), 5000)

    def test_long_syntax(self):
        self.assertEqual(extract_port({"ports": [{"target": 80, "published": "8081"}]}), 8081)
        self.assertEqual(extract_port({"ports": [{"target": 80}]}), 80)

    def test_no_or_invalid_ports(self):
        self.assertIsNone(extract_port({}))
        self.assertIsNone(extract_port({"ports": []}))
        self.assertIsNone(extract_port({"ports": ["70000:80"]}))
        self.assertIsNone(extract_port({"ports": ["not-a-port"]}))


class EnvironmentTests(unittest.TestCase):
    def test_nested_values_are_skipped(self):
        env = normalize_environment({"A": 1, "B": ["x"], "C": {"k": "v"}, "D": None, "E": False})
        self.assertEqual(env, {"A": "1", "D": "", "E": "false"})

    def test_list_form(self):
        self.assertEqual(normalize_environment(["A=1", "B=x=y", "C"]), {"A": "1", "B": "x=y", "C": ""})

    def test_other_shapes(self):
        self.assertEqual(normalize_environment(None), {})
        self.assertEqual(normalize_environment("A=1"), {})

    def test_backup_heuristic(self):
        self.assertTrue(should_enable_backup("postgres"))
        self.assertTrue(should_enable_backup("Redis-Cache"))
        self.assertFalse(should_enable_backup("web"))


class AnalysisTests(unittest.TestCase):
    def setUp(self):
        self._td = tempfile.TemporaryDirectory()
        self.dir = Path(self._td.name)

    def tearDown(self):
        self._td.cleanup()

    def _write(self, text):
        path = self.dir / "compose.yaml"
        path.write_text(text, encoding="utf-8")
        return path

    def test_analyze_services_networks_and_volumes(self):
        path = self._write(
            "version: '3.8'\n"
            "services:\n"
            "  web:\n"
            "    build: {context: ./app}\n"
            "    ports: [\"8080:80\", {target: 443, published: 8443}]\n"
            "    depends_on: [db]\n"
            "    networks: [front]\n"
            "    environment: [A=1, B=2]\n"
            "  db:\n"
            "    image: postgres\n"
            "    volumes: [\"data:/var/lib/postgresql/data\"]\n"
            "    depends_on: {cache: {condition: service_started}}\n"
            "networks: {front: {}}\n"
            "volumes: {data: {}}\n"
        )
        info = analyze_topology(path)
        self.assertEqual(info["version"], "3.8")
        web, db = info["services"]
        self.assertEqual(web["build"], "./app")
        self.assertIsNone(web["image"])
        self.assertEqual(web["ports"], ["8080:80", "8443:443"])
        self.assertEqual(web["depends_on"], ["db"])
        self.assertEqual(web["networks"], ["front"])
        self.assertEqual(web["environment_count"], 2)
        self.assertEqual(db["image"], "postgres")
        self.assertEqual(db["volumes"], ["data:/var/lib/postgresql/data"])
        self.assertEqual(db["depends_on"], ["cache"])
        self.assertEqual(info["networks"], ["front"])
        self.assertEqual(info["volumes"], ["data"])

    def test_validate_warnings(self):
        self.assertEqual(validate_topology(self._write("version: '3'\nservices:\n  web: {image: nginx}\n")), [])
        self.assertEqual(
            validate_topology(self._write("services:\n  web: {ports: [\"80:80\"]}\n")),
            ["service web has neither image nor build", "no version field"],
        )
        self.assertEqual(validate_topology(self._write("version: '3'\n")), ["no services section"])
        self.assertEqual(validate_topology(self._write("- a\n- b\n")), ["top level is not a mapping"])

    def test_parse_errors_propagate(self):
        with self.assertRaises(TOPOLOGY_ERRORS):
            validate_topology(self._write("services: [unclosed\n"))
        with self.assertRaises(TOPOLOGY_ERRORS):
            analyze_topology(self.dir / "missing.yml")


if __name__ == "__main__":
    unittest.main()
