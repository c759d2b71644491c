"""
Shared fixtures: TOML config files under tmp_path and a clean app environment.
"""

from __future__ import annotations

from pathlib import Path
from typing import Callable

import pytest
import pytest_asyncio

from governor.manager import Manager, configure

SHOP_CONFIG = """
[shop]
dbdriver = "sqlite3"
dbpath = "shop.db"
"""


@pytest.fixture
def write_config(tmp_path: Path) -> Callable[[str], Path]:
    def _write(text: str, name: str = "governor.toml") -> Path:
        path = tmp_path / name
        path.write_text(text, encoding="utf-8")
        return path

    return _write


@pytest.fixture(autouse=True)
def clean_app_env(monkeypatch):
    for name in ("SHOP_HOST", "SHOP_PORT", "BLOG_HOST", "BLOG_PORT"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def shop_config(write_config, tmp_path, monkeypatch) -> Path:
    # dbpath is relative; keep the database file inside tmp_path.
    monkeypatch.chdir(tmp_path)
    return write_config(SHOP_CONFIG)


@pytest_asyncio.fixture
async def shop_manager(shop_config):
    manager = configure(shop_config)
    yield manager
    await manager.close_all()


@pytest_asyncio.fixture
async def make_manager(write_config, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    managers: list[Manager] = []

    def _make(text: str) -> Manager:
        manager = configure(write_config(text))
        managers.append(manager)
        return manager

    yield _make
    for manager in managers:
        await manager.close_all()
