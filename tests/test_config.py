from pathlib import Path

import pytest

from webhook_cert_manager.config import ManagerConfig


def test_from_file(tmp_path: Path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text(
        "context:\n"
        "  context: kind-dev\n"
        "  verify_ssl: false\n"
        "provisioner:\n"
        "  validity_days: 90\n"
        "verify_certs: true\n"
    )

    manager_config = ManagerConfig.from_file(path)

    assert manager_config.context.context == "kind-dev"
    assert manager_config.context.verify_ssl is False
    assert manager_config.provisioner.validity_days == 90
    assert manager_config.provisioner.key_size == 2048
    assert manager_config.verify_certs is True
    assert manager_config.only_annotated is True


def test_from_empty_file(tmp_path: Path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text("")

    assert ManagerConfig.from_file(path) == ManagerConfig()


def test_from_file_requires_mapping(tmp_path: Path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text("- not\n- a mapping\n")

    with pytest.raises(ValueError):
        ManagerConfig.from_file(path)
