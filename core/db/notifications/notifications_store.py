"""
WhatsApp delivery bookkeeping for the expiring-subscription notifier.

`wa_notificaciones` holds one row per (phone, day) that already got a notice,
so a second run on the same day skips that phone. `wa_logs` keeps every
outcome, including failures.
"""
from __future__ import annotations

from typing import Dict, List


def already_notified_today(conn, phone: str) -> bool:
    cur = conn.cursor()
    cur.execute(
        "SELECT 1 FROM wa_notificaciones WHERE phone = ? AND fecha = CURRENT_DATE LIMIT 1",
        (phone,),
    )
    return cur.fetchone() is not None


def mark_notified(conn, phone: str) -> None:
    cur = conn.cursor()
    cur.execute(
        """
        INSERT INTO wa_notificaciones (phone, fecha)
        VALUES (?, CURRENT_DATE)
        ON CONFLICT (phone, fecha) DO NOTHING
        """,
        (phone,),
    )
    conn.commit()


def log_delivery_result(conn, phone: str, status: str, message: str | None = None) -> None:
    text = f"{message}".strip()[:500] if message else None
    cur = conn.cursor()
    cur.execute(
        "INSERT INTO wa_logs (phone, status, message) VALUES (?, ?, ?)",
        (phone, status, text),
    )
    conn.commit()


def get_delivery_log(conn, phone: str, limit: int = 50) -> List[Dict]:
    """Return the latest delivery outcomes for a phone, newest first."""
    return conn.query(
        """
        SELECT id, phone, status, message, created_at
        FROM wa_logs
        WHERE phone = ?
        ORDER BY created_at DESC, id DESC
        LIMIT ?
        """,
        (phone, int(limit)),
    )


__all__ = [
    "already_notified_today",
    "mark_notified",
    "log_delivery_result",
    "get_delivery_log",
]
