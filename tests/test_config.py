import pytest

from dcm.config import parse_config, read_config, to_desired_specs
from dcm.errors import ConfigInvalid
from dcm.models import HostBinding

CONFIG = """
app_config:
  debug: true
  update_check: true
  remove_unwanted_containers: false
containers:
  - name: web
    image: nginx:latest
    port_bindings:
      - port: 80
        host_port: 8090
      - port: "80"
        host_ip: 127.0.0.1
        host_port: "8091"
      - port: 53
        protocol: UDP
        host_port: 5353
    env:
      - MODE=prod
  - name: cache
    image: redis:7
    cmd: ["redis-server", "--save", ""]
"""


def test_parse_full_document():
    config = parse_config(CONFIG)
    assert config.app_config.debug is True
    assert config.app_config.update_check is True
    assert config.app_config.remove_unwanted_containers is False
    assert [c.name for c in config.containers] == ["web", "cache"]

    web = config.containers[0]
    assert web.port_bindings[0].port == "80"
    assert web.port_bindings[0].host_port == "8090"
    assert web.port_bindings[2].key == "53/udp"


def test_desired_specs_keep_order_and_group_bindings():
    web, cache = to_desired_specs(parse_config(CONFIG))

    assert web.name == "web"
    assert web.exposed_ports == frozenset({"80/tcp", "53/udp"})
    assert web.port_bindings["80/tcp"] == (HostBinding("", "8090"), HostBinding("127.0.0.1", "8091"))
    assert web.port_bindings["53/udp"] == (HostBinding("", "5353"),)
    assert web.env == ("MODE=prod",)
    assert web.cmd == ()

    assert cache.cmd == ("redis-server", "--save", "")
    assert cache.exposed_ports == frozenset()


def test_defaults_for_empty_sections():
    config = parse_config("app_config:\ncontainers:\n")
    assert config.containers == []
    assert config.app_config.update_check is False

    assert parse_config("").containers == []


def test_null_lists_become_empty():
    config = parse_config("containers:\n  - name: a\n    image: busybox\n    env:\n    cmd:\n")
    assert config.containers[0].env == []
    assert config.containers[0].cmd == []


@pytest.mark.parametrize(
    "text,needle",
    [
        ("containers: [\n", "invalid YAML"),
        ("- just\n- a list\n", "top level must be a mapping"),
        ("containers:\n  - image: nginx\n", "name"),
        ("containers:\n  - name: web\n", "image"),
        ("containers:\n  - name: /web\n    image: nginx\n", "Invalid container name"),
        (
            "containers:\n  - name: web\n    image: nginx\n  - name: web\n    image: redis\n",
            "Duplicate container name: web",
        ),
        ("containers:\n  - name: web\n    image: nginx\n    port_bindings:\n      - port: 70000\n", "port"),
        (
            "containers:\n  - name: web\n    image: nginx\n    port_bindings:\n      - port: 80\n        protocol: http\n",
            "protocol",
        ),
    ],
)
def test_invalid_documents(text, needle):
    with pytest.raises(ConfigInvalid) as exc_info:
        parse_config(text, source="test.yaml")
    assert needle in str(exc_info.value)
    assert str(exc_info.value).startswith("test.yaml")


def test_read_config_missing_file(tmp_path):
    with pytest.raises(ConfigInvalid, match="cannot read config"):
        read_config(tmp_path / "nope.yaml")


def test_read_config_from_disk(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(CONFIG, encoding="utf-8")
    assert len(read_config(path).containers) == 2
