"""
Shared test fixtures and configuration.
"""

from pathlib import Path

import pytest

from crudforge.core.config import load_config
from crudforge.core.templates import TemplateEngine
from crudforge.registry import create_type_mapper


@pytest.fixture
def config():
    """Bundled configuration with no overrides."""
    return load_config()


@pytest.fixture
def mapper(config):
    """Type mapper for the default (postgresql) dialect."""
    return create_type_mapper(config)


@pytest.fixture
def universal_mapper(config):
    """Type mapper over the universal table only."""
    return create_type_mapper(config, "")


@pytest.fixture
def engine() -> TemplateEngine:
    """Template engine over the bundled templates."""
    return TemplateEngine()


@pytest.fixture
def users_table() -> dict:
    """The canonical users table."""
    return {
        "name": "users",
        "fields": [
            {"name": "id", "type": "BIGINT", "primary_key": True, "auto_increment": True},
            {"name": "username", "type": "VARCHAR(50)", "unique": True, "nullable": False},
            {"name": "email", "type": "VARCHAR(100)", "unique": True},
        ],
    }


@pytest.fixture
def shop_schema(users_table) -> dict:
    """Three related tables: users, roles and user_roles-style orders."""
    return {
        "tables": [
            users_table,
            {
                "name": "orders",
                "fields": [
                    {"name": "id", "type": "BIGINT", "primaryKey": True, "autoIncrement": True},
                    {"name": "user_id", "type": "BIGINT", "nullable": False, "references": "users.id"},
                    {"name": "total", "type": "DECIMAL(10,2)", "nullable": False},
                    {"name": "placed_at", "type": "TIMESTAMP"},
                ],
            },
            {
                "name": "order_items",
                "fields": [
                    {"name": "id", "type": "UUID", "primary_key": True},
                    {"name": "order_id", "type": "BIGINT", "references": {"table": "orders"}},
                    {"name": "quantity", "type": "INTEGER", "default": 1},
                ],
            },
        ]
    }


@pytest.fixture
def write_file(tmp_path: Path):
    """Write text to a file under tmp_path and return its path."""

    def _write(name: str, text: str) -> Path:
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
        return path

    return _write
