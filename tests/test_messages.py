from datetime import date, datetime
from decimal import Decimal

import pytest

from worker.messages import (
    NOTE_NEQUI,
    SCREEN_NOTE,
    build_expiring_message,
    build_password_message,
    fmt_date_ddmmyyyy,
    fmt_money,
    line_for_item,
    service_bullet,
)
from worker.recipients import ServiceLine


@pytest.mark.parametrize(
    "value, expected",
    [
        ("2024-03-05T00:00:00.000Z", "05/03/2024"),
        ("2024-03-05", "05/03/2024"),
        (date(2024, 3, 5), "05/03/2024"),
        (datetime(2024, 3, 5, 23, 59), "05/03/2024"),
        (None, ""),
        ("", ""),
        ("mañana", ""),
    ],
)
def test_fmt_date_ddmmyyyy(value, expected):
    assert fmt_date_ddmmyyyy(value) == expected


@pytest.mark.parametrize(
    "value, expected",
    [
        (15000, "$ 15.000"),
        (Decimal("15000.00"), "$ 15.000"),
        (12500.5, "$ 12.500,5"),
        ("1200000", "$ 1.200.000"),
        (None, None),
        ("gratis", None),
    ],
)
def test_fmt_money(value, expected):
    assert fmt_money(value) == expected


def test_screen_bullet_includes_screen_number_and_date():
    item = ServiceLine("Pantalla", "Netflix", "2", "2025-06-01")
    assert service_bullet(item) == "• Netflix — Pantalla | *Pantalla 2* | vence: 01/06/2025"


def test_full_account_bullet_without_platform_or_date():
    item = ServiceLine("Cuenta completa", None, None, None)
    assert service_bullet(item) == "• tu plataforma — Cuenta completa"


def test_password_message_content():
    items = [ServiceLine("Pantalla", "Netflix", "2", date(2025, 6, 1))]
    text = build_password_message("Ana María", items, "cuenta@mail.com", "Nueva#1")

    assert text.startswith("Hola Ana, te notificamos el *cambio de contraseña*")
    assert "*cuenta@mail.com*" in text
    assert "• Netflix — Pantalla | *Pantalla 2* | vence: 01/06/2025" in text
    assert "*La nueva contraseña es:* Nueva#1." in text
    assert SCREEN_NOTE in text
    assert text.endswith("https://www.youtube.com/watch?v=2pYn4px0YWI")


def test_password_message_for_full_account_skips_screen_note():
    items = [ServiceLine("Cuenta completa", "Disney+", None, "2025-06-01")]
    text = build_password_message(None, items, "a@x.com", "k")

    assert text.startswith("Hola !, ")
    assert SCREEN_NOTE not in text


def test_line_for_item_with_screen_and_cost():
    item = {
        "servicio": "Pantalla",
        "plataforma_nombre": "Netflix",
        "nro_pantalla": "3",
        "correo": "cuenta@mail.com",
        "fecha_vencimiento": date(2025, 6, 1),
        "total_pagado": Decimal("15000.00"),
    }
    assert line_for_item(item) == (
        "• Tu Netflix (pantalla 3), con el correo cuenta@mail.com, vence el *01/06/2025*, "
        "quería saber si deseas *realizar la renovación*, tiene un costo de *$ 15.000*."
    )


def test_line_for_item_without_cost_or_email():
    item = {"servicio": "Cuenta completa", "plataforma_nombre": " ", "fecha_vencimiento": "2025-06-01"}
    assert line_for_item(item) == (
        "• Tu tu plataforma, vence el *01/06/2025*, quería saber si deseas *realizar la renovación*."
    )


def test_expiring_message_layout():
    items = [
        {"servicio": "Pantalla", "plataforma_nombre": "Netflix", "nro_pantalla": "1", "fecha_vencimiento": "2025-06-01"},
        {"servicio": "Cuenta completa", "plataforma_nombre": "Max", "fecha_vencimiento": "2025-06-02"},
    ]
    lines = build_expiring_message("Luis Pérez", items).split("\n")

    assert lines[0] == "Hola Luis, te escribimos de MED PLAY."
    assert lines[1] == ""
    assert lines[2].startswith("• Tu Netflix (pantalla 1)")
    assert lines[3].startswith("• Tu Max, vence el *02/06/2025*")
    assert lines[-1] == f"*{NOTE_NEQUI}*"

    assert build_expiring_message("", items).startswith("Hola, te escribimos")
