import os

import pytest


if not os.getenv("DATABASE_URL"):
    pytest.skip("DATABASE_URL must be set for Postgres-only tests.", allow_module_level=True)

from core.db.base import get_conn
from core.db.schema import init_db


_TABLES = [
    "wa_logs",
    "wa_notificaciones",
    "pantallas",
    "cuentascompletas",
    "cuentascompartidas",
    "plataformas",
    "usuarios",
]


def _truncate_all():
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        "TRUNCATE " + ", ".join(_TABLES) + " RESTART IDENTITY CASCADE"
    )
    conn.commit()
    conn.close()


@pytest.fixture(autouse=True)
def _clean_db():
    init_db()
    _truncate_all()
    yield
    _truncate_all()


@pytest.fixture
def conn():
    c = get_conn()
    yield c
    c.close()
