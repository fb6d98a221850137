"""Root conftest for tests."""

import os

import pytest

if os.getenv("APP_ENV", "").strip().lower() == "prod":
    raise RuntimeError("Refusing to run tests with APP_ENV=prod")

os.environ["APP_ENV"] = "test"
os.environ["PUBSUB_ENABLED"] = "false"
os.environ.setdefault("METRICS_TOKEN", "test-metrics-token")
os.environ.setdefault("OTEL_LOG_RECORD_FORMAT", "console")


def pytest_collection_modifyitems(items: list[pytest.Item]) -> None:
    """Auto-apply markers based on test directory structure."""
    dir_marker_map = {
        "unit": pytest.mark.unit,
        "smoke": pytest.mark.smoke,
    }
    for item in items:
        test_path = str(item.fspath)
        for dir_name, marker in dir_marker_map.items():
            if f"/{dir_name}/" in test_path or f"\\{dir_name}\\" in test_path:
                item.add_marker(marker)
                break


@pytest.fixture
def default_rules():
    """Routing rules matching the service defaults."""
    from vulnrouter.routing.store import RoutingRule

    return {
        "OS": RoutingRule(channel="#os-vulns", min_severity="MEDIUM"),
        "APP": RoutingRule(channel="#app-vulns", min_severity="HIGH"),
    }


@pytest.fixture
def config_store(default_rules):
    """Isolated routing configuration store seeded with the defaults."""
    from vulnrouter.routing.store import RoutingConfigStore

    return RoutingConfigStore(default_rules)


@pytest.fixture
def make_finding():
    """Factory for findings with sensible display fields."""
    from vulnrouter.schemas.v1.findings import Finding

    def _create(severity: str = "HIGH", category: str = "OS", **overrides):
        fields = {
            "severity": severity,
            "category": category,
            "description": "Heap overflow in parser",
            "package_name": "openssl",
            "resource_name": (
                "//compute.googleapis.com/projects/demo/zones/us-central1-a/instances/web-1"
            ),
        }
        fields.update(overrides)
        return Finding(**fields)

    return _create
