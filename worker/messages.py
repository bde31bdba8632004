"""
WhatsApp message texts (Spanish, WhatsApp `*bold*` markup).
"""
from __future__ import annotations

import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Mapping, Optional, Sequence

from worker.recipients import ServiceLine

BRAND = "MED PLAY"
NOTE_NEQUI = "PARA PAGOS POR NEQUI SOLICITAR EL QR POR FAVOR"

SCREEN_NOTE = "*Recuerda tu pantalla es la que ves arriba; solo puedes utilizar esa.*"

TIPS = (
    "NOTA:*NO MODIFICAR LOS NUMEROS DEL PERFIL, USAR UNICAMENTE EL QUE SE LE ASIGNO SIN CAMBIARLO*\n"
    "PARA EVITAR CODIGOS DEBES BORRAR HISTORIAL Y COOKIES ---->\n"
    "EN CELULAR: https://www.youtube.com/watch?v=rEsApVI1-lk\n"
    "EN EL COMPUTADOR: https://www.youtube.com/watch?v=2pYn4px0YWI"
)

_ISO_DATE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})")


def fmt_date_ddmmyyyy(value: Any) -> str:
    """
    '2024-03-05T00:00:00.000Z' -> '05/03/2024'.

    Strings are cut at their YYYY-MM-DD prefix with no timezone conversion.
    """
    if value is None or value == "":
        return ""
    if isinstance(value, (date, datetime)):
        return value.strftime("%d/%m/%Y")
    m = _ISO_DATE.match(str(value))
    if m:
        return f"{m.group(3)}/{m.group(2)}/{m.group(1)}"
    return ""


def fmt_money(value: Any) -> Optional[str]:
    """Peso amount with Colombian separators: 15000 -> '$ 15.000', 12500.5 -> '$ 12.500,5'."""
    if value is None or value == "":
        return None
    try:
        num = Decimal(str(value))
    except InvalidOperation:
        return None
    if not num.is_finite():
        return None
    text = f"{num:,.2f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    text = text.translate(str.maketrans({",": ".", ".": ","}))
    return f"$ {text}"


def first_name(nombre: Optional[str]) -> Optional[str]:
    parts = (nombre or "").split()
    return parts[0] if parts else None


def service_bullet(item: ServiceLine) -> str:
    line = f"• {item.plataforma_nombre or 'tu plataforma'} — {item.servicio}"
    if item.servicio == "Pantalla" and item.nro_pantalla:
        line += f" | *Pantalla {item.nro_pantalla}*"
    if item.fecha_vencimiento:
        line += f" | vence: {fmt_date_ddmmyyyy(item.fecha_vencimiento)}"
    return line


def build_password_message(
    nombre: Optional[str],
    items: Sequence[ServiceLine],
    correo: str,
    nueva_clave: str,
) -> str:
    greeting = first_name(nombre) or "!"
    bullets = "\n".join(service_bullet(it) for it in items)
    screen_note = f"\n{SCREEN_NOTE}" if any(it.servicio == "Pantalla" for it in items) else ""

    text = (
        f"Hola {greeting}, te notificamos el *cambio de contraseña* asociado a tu correo: *{correo}*.\n"
        "\n"
        f"{bullets}\n"
        "\n"
        f"*La nueva contraseña es:* {nueva_clave}.\n"
        f"No la compartas con nadie; ¡que estés súper bien!{screen_note}\n"
        "\n"
        f"{TIPS}"
    )
    return text.strip()


def line_for_item(item: Mapping[str, Any]) -> str:
    plat = (item.get("plataforma_nombre") or "").strip() or "tu plataforma"
    correo = (item.get("correo") or "").strip()
    vence = fmt_date_ddmmyyyy(item.get("fecha_vencimiento"))
    costo = fmt_money(item.get("total_pagado"))
    nro = item.get("nro_pantalla")
    pant = f" (pantalla {nro})" if item.get("servicio") == "Pantalla" and nro else ""

    parts = [
        f"• Tu {plat}{pant}",
        f", con el correo {correo}" if correo else "",
        f", vence el *{vence}*, quería saber si deseas *realizar la renovación*",
        f", tiene un costo de *{costo}*." if costo else ".",
    ]
    return "".join(parts)


def build_expiring_message(nombre: Optional[str], items: Iterable[Mapping[str, Any]]) -> str:
    first = first_name(nombre)
    greeting = f"Hola {first}," if first else "Hola,"
    lines = "\n".join(line_for_item(it) for it in items)
    return "\n".join([f"{greeting} te escribimos de {BRAND}.", "", lines, "", f"*{NOTE_NEQUI}*"])
