"""Tests for the store initialisation script."""

from __future__ import annotations

import openpyxl
import pytest

from amelia_pos import constants, data_manager, setup_store


def test_write_default_config_is_readable_by_data_layer(tmp_path):
    config_path = setup_store.write_default_config(tmp_path / "config.ini", shop_name="Tienda")

    parser = data_manager.read_config(config_path)
    settings = data_manager.parse_settings(parser, base_path=config_path.parent)
    assert settings.shop_name == "Tienda"
    assert settings.schema_version == constants.EXPECTED_SCHEMA_VERSION
    assert settings.data_file == (tmp_path / setup_store.DEFAULT_DATA_FILE).resolve()
    assert settings.page_size == constants.DEFAULT_PAGE_SIZE


def test_write_default_config_refuses_to_overwrite(tmp_path):
    config_path = setup_store.write_default_config(tmp_path / "config.ini")
    with pytest.raises(FileExistsError):
        setup_store.write_default_config(config_path)


def test_load_settings_requires_data_file(tmp_path):
    config_path = tmp_path / "config.ini"
    config_path.write_text("[System]\nShopName = x\n", encoding="utf-8")
    with pytest.raises(KeyError):
        setup_store.load_settings(config_path)


def test_main_initialises_config_and_workbook(tmp_path, capsys):
    config_path = tmp_path / "config.ini"

    assert setup_store.main(["--config", str(config_path), "--init-config"]) == 0
    assert "[SUCCESS]" in capsys.readouterr().out

    workbook = openpyxl.load_workbook(tmp_path / setup_store.DEFAULT_DATA_FILE)
    assert workbook.sheetnames == [constants.STORAGE_SHEET]


def test_main_refuses_existing_workbook_without_force(tmp_path):
    config_path = tmp_path / "config.ini"
    assert setup_store.main(["--config", str(config_path), "--init-config"]) == 0

    assert setup_store.main(["--config", str(config_path)]) == 1
    assert setup_store.main(["--config", str(config_path), "--force"]) == 0


def test_main_reports_missing_config(tmp_path, capsys):
    assert setup_store.main(["--config", str(tmp_path / "absent.ini")]) == 1
    assert "--init-config" in capsys.readouterr().out
