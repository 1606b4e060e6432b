import pytest
from fastapi.testclient import TestClient

from dcm.errors import EngineError, EngineUnavailable
from dcm.metrics import DockerMetrics
from dcm.runtime import ConfigStore
from dcm.settings import Settings
from fakes import make_spec
from main import create_app

CONFIG = """
app_config:
  debug: false
containers:
  - name: web
    image: nginx:latest
    port_bindings:
      - port: 80
        host_port: 8090
"""


@pytest.fixture
def config_path(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(CONFIG, encoding="utf-8")
    return path


def make_client(engine, config_path, **settings):
    app = create_app(
        engine=engine,
        store=ConfigStore(config_path),
        sink=DockerMetrics(),
        cfg=Settings(config_path=str(config_path), **settings),
    )
    return TestClient(app)


def test_update_reconciles(engine, config_path):
    with make_client(engine, config_path) as client:
        r = client.post("/update")
    assert r.status_code == 200
    assert r.text == "Containers reconciled\n"
    assert engine.by_name("web").state == "running"


def test_update_accepts_get(engine, config_path):
    with make_client(engine, config_path) as client:
        assert client.get("/update").status_code == 200


def test_update_failure_is_plain_text_500(engine, config_path):
    engine.fail("create", "web", EngineError("pull access denied"))
    with make_client(engine, config_path) as client:
        r = client.post("/update")
    assert r.status_code == 500
    assert r.headers["content-type"].startswith("text/plain")
    assert "Reconciliation failed for:" in r.text
    assert "web: EngineError: pull access denied" in r.text


def test_reload_swaps_config(engine, config_path):
    with make_client(engine, config_path) as client:
        config_path.write_text(CONFIG.replace("nginx:latest", "nginx:1.25"), encoding="utf-8")
        r = client.post("/reload")
        assert r.status_code == 200
        assert r.text == "Config reloaded\n"
        client.post("/update")
    assert engine.by_name("web").image == "nginx:1.25"


def test_invalid_reload_keeps_previous_config(engine, config_path):
    with make_client(engine, config_path) as client:
        config_path.write_text("containers: [\n", encoding="utf-8")
        r = client.post("/reload")
        assert r.status_code == 500
        assert "invalid YAML" in r.text

        assert client.post("/update").status_code == 200
        events = client.get("/events").json()
    assert engine.by_name("web").image == "nginx:latest"
    assert any("keeping the previous one" in e["message"] for e in events)


def test_startup_with_invalid_config_fails(engine, tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("containers:\n  - name: web\n", encoding="utf-8")
    with pytest.raises(Exception):
        with make_client(engine, path):
            pass


def test_metrics_exposition(engine, config_path):
    engine.add_container(make_spec("web"))
    with make_client(engine, config_path) as client:
        r = client.get("/metrics")
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/plain")
    assert 'container_name="web"' in r.text
    assert "docker_memory_usage_overall" in r.text


def test_metrics_partial_failure_is_500_by_default(engine, config_path):
    engine.add_container(make_spec("web"))
    broken = engine.add_container(make_spec("db", ports={}))
    engine.fail("stats", broken, EngineUnavailable("read timed out"))
    with make_client(engine, config_path) as client:
        r = client.get("/metrics")
    assert r.status_code == 500
    assert r.text.startswith("Errors occurred:")
    assert broken in r.text


def test_metrics_partial_failure_can_be_served(engine, config_path):
    engine.add_container(make_spec("web"))
    broken = engine.add_container(make_spec("db", ports={}))
    engine.fail("stats", broken, EngineUnavailable("read timed out"))
    with make_client(engine, config_path, serve_partial_metrics=True) as client:
        r = client.get("/metrics")
    assert r.status_code == 200
    assert 'container_name="web"' in r.text
    assert 'container_name="db"' not in r.text


def test_metrics_list_failure(engine, config_path):
    engine.fail("list", "containers", EngineUnavailable("connection refused"))
    with make_client(engine, config_path) as client:
        r = client.get("/metrics")
    assert r.status_code == 500
    assert r.text.startswith("Could not list containers:")


def test_removed_container_series_kept_unless_pruning_enabled(engine, config_path):
    cid = engine.add_container(make_spec("web"))
    with make_client(engine, config_path) as client:
        client.get("/metrics")
        engine.containers.pop(cid)
        assert 'container_name="web"' in client.get("/metrics").text

    cid = engine.add_container(make_spec("web"))
    with make_client(engine, config_path, prune_stale_metrics=True) as client:
        client.get("/metrics")
        engine.containers.pop(cid)
        assert 'container_name="web"' not in client.get("/metrics").text


def test_events_limit(engine, config_path):
    with make_client(engine, config_path) as client:
        client.post("/update")
        events = client.get("/events", params={"limit": 1}).json()
        assert client.get("/events", params={"limit": 0}).status_code == 422
    assert len(events) == 1
    assert events[0]["message"] == "Reconciled 1 container(s)"
