"""
Schema helpers for the tables the notifiers touch.

The admin app owns these tables; `init_db` only exists so local runs and the
Postgres-backed tests have something to query.
"""
from __future__ import annotations

from core.db.base import get_conn


def init_db() -> None:
    """Create reference, subscription and notification tables if they don't exist."""
    conn = get_conn()
    cur = conn.cursor()

    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS usuarios(
            contacto TEXT PRIMARY KEY,
            nombre TEXT
        )
        """
    )
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS plataformas(
            id SERIAL PRIMARY KEY,
            nombre TEXT NOT NULL
        )
        """
    )
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS cuentascompartidas(
            id SERIAL PRIMARY KEY,
            plataforma_id INTEGER REFERENCES plataformas(id),
            correo TEXT NOT NULL,
            clave TEXT
        )
        """
    )
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS pantallas(
            id SERIAL PRIMARY KEY,
            cuenta_id INTEGER REFERENCES cuentascompartidas(id) ON DELETE CASCADE,
            contacto TEXT,
            nro_pantalla TEXT,
            fecha_vencimiento DATE,
            total_pagado NUMERIC(12, 2),
            estado TEXT
        )
        """
    )
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS cuentascompletas(
            id SERIAL PRIMARY KEY,
            plataforma_id INTEGER REFERENCES plataformas(id),
            contacto TEXT,
            correo TEXT NOT NULL,
            clave TEXT,
            fecha_vencimiento DATE,
            total_pagado NUMERIC(12, 2),
            estado TEXT
        )
        """
    )
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS wa_notificaciones(
            id SERIAL PRIMARY KEY,
            phone TEXT NOT NULL,
            fecha DATE NOT NULL,
            UNIQUE(phone, fecha)
        )
        """
    )
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS wa_logs(
            id SERIAL PRIMARY KEY,
            phone TEXT NOT NULL,
            status TEXT NOT NULL,
            message TEXT,
            created_at TIMESTAMP NOT NULL DEFAULT NOW()
        )
        """
    )

    conn.commit()
    conn.close()
