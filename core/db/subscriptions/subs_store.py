"""
Subscription queries used by the notifiers (read-only).

Two sources feed every query: `pantallas` (screens sold off a shared account)
and `cuentascompletas` (whole accounts). Both are joined with the contact and
platform tables so the message composer has everything it needs.
"""
from __future__ import annotations

from typing import Dict, List, Sequence

_PANTALLAS_BY_CORREO = """
    SELECT
      'Pantalla' AS servicio,
      p.contacto,
      u.nombre,
      p.nro_pantalla,
      p.fecha_vencimiento::date AS fecha_vencimiento,
      pl.nombre AS plataforma_nombre,
      cc.correo AS correo
    FROM pantallas p
    LEFT JOIN usuarios u ON u.contacto = p.contacto
    LEFT JOIN cuentascompartidas cc ON cc.id = p.cuenta_id
    LEFT JOIN plataformas pl ON pl.id = cc.plataforma_id
    WHERE LOWER(cc.correo) = ANY(?)
      AND (p.estado IS NULL OR p.estado <> 'CANCELADA')
      AND p.fecha_vencimiento::date > CURRENT_DATE
"""

_COMPLETAS_BY_CORREO = """
    SELECT
      'Cuenta completa' AS servicio,
      c.contacto,
      u.nombre,
      NULL AS nro_pantalla,
      c.fecha_vencimiento::date AS fecha_vencimiento,
      pl.nombre AS plataforma_nombre,
      c.correo AS correo
    FROM cuentascompletas c
    LEFT JOIN usuarios u ON u.contacto = c.contacto
    LEFT JOIN plataformas pl ON pl.id = c.plataforma_id
    WHERE LOWER(c.correo) = ANY(?)
      AND (c.estado IS NULL OR c.estado <> 'CANCELADA')
      AND c.fecha_vencimiento::date > CURRENT_DATE
"""

_PANTALLAS_EXPIRING = """
    SELECT
      'Pantalla' AS servicio,
      p.contacto,
      u.nombre,
      p.nro_pantalla,
      p.fecha_vencimiento::date AS fecha_vencimiento,
      p.total_pagado,
      p.estado,
      cc.correo AS correo,
      cc.plataforma_id AS plataforma_id,
      pl.nombre AS plataforma_nombre
    FROM pantallas p
    LEFT JOIN usuarios u ON u.contacto = p.contacto
    LEFT JOIN cuentascompartidas cc ON cc.id = p.cuenta_id
    LEFT JOIN plataformas pl ON pl.id = cc.plataforma_id
    WHERE p.fecha_vencimiento::date <= CURRENT_DATE + ?::int
      AND (p.estado IS NULL OR p.estado <> 'CANCELADA')
"""

_COMPLETAS_EXPIRING = """
    SELECT
      'Cuenta completa' AS servicio,
      c.contacto,
      u.nombre,
      NULL AS nro_pantalla,
      c.fecha_vencimiento::date AS fecha_vencimiento,
      c.total_pagado,
      c.estado,
      c.correo AS correo,
      c.plataforma_id,
      pl.nombre AS plataforma_nombre
    FROM cuentascompletas c
    LEFT JOIN usuarios u ON u.contacto = c.contacto
    LEFT JOIN plataformas pl ON pl.id = c.plataforma_id
    WHERE c.fecha_vencimiento::date <= CURRENT_DATE + ?::int
      AND (c.estado IS NULL OR c.estado <> 'CANCELADA')
"""


def fetch_by_correos(conn, correos: Sequence[str]) -> List[Dict]:
    """
    Return future-dated, non-cancelled subscriptions tied to any of `correos`.

    `correos` must already be lower-cased and trimmed. Subscriptions expiring
    today are not "future" and are left out. Screens come first, then full
    accounts.
    """
    correos_list = [c for c in correos if c]
    if not correos_list:
        return []

    pantallas = conn.query(_PANTALLAS_BY_CORREO, (correos_list,))
    completas = conn.query(_COMPLETAS_BY_CORREO, (correos_list,))
    return pantallas + completas


def fetch_expiring_rows(conn, days_ahead: int = 1) -> List[Dict]:
    """Return non-cancelled subscriptions expiring on or before today + `days_ahead`."""
    pantallas = conn.query(_PANTALLAS_EXPIRING, (int(days_ahead),))
    completas = conn.query(_COMPLETAS_EXPIRING, (int(days_ahead),))
    return pantallas + completas


__all__ = [
    "fetch_by_correos",
    "fetch_expiring_rows",
]
