"""
Normalisation and grouping of subscription rows into outgoing messages.

Password-change notices go out once per (phone, email) pair: a customer with
two screens on the same shared account gets a single message listing both.
Expiring notices go out once per phone.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional

PHONE_RE = re.compile(r"^\d{8,15}$")
_NON_DIGITS = re.compile(r"\D")


def normalize_email(value: Any) -> str:
    return str(value or "").strip().lower()


def to_e164(contacto: Any) -> str:
    """Digits only; '+57 300-111 2222' -> '573001112222'."""
    return _NON_DIGITS.sub("", str(contacto or ""))


def is_valid_phone(phone: str) -> bool:
    return bool(PHONE_RE.match(phone or ""))


def _text(value: Any) -> str:
    return "" if value is None else str(value)


@dataclass(frozen=True)
class ServiceLine:
    servicio: str
    plataforma_nombre: Optional[str] = None
    nro_pantalla: Optional[str] = None
    fecha_vencimiento: Any = None

    @property
    def key(self) -> str:
        return "|".join(
            _text(v)
            for v in (self.servicio, self.plataforma_nombre, self.nro_pantalla, self.fecha_vencimiento)
        )

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "ServiceLine":
        nro = row.get("nro_pantalla")
        return cls(
            servicio=row.get("servicio") or "",
            plataforma_nombre=row.get("plataforma_nombre"),
            nro_pantalla=None if nro is None else str(nro),
            fecha_vencimiento=row.get("fecha_vencimiento"),
        )


@dataclass
class Recipient:
    phone: str
    correo: str
    nueva_clave: str
    nombre: Optional[str] = None
    items: List[ServiceLine] = field(default_factory=list)

    @property
    def key(self) -> str:
        return f"{self.phone}::{self.correo}"


@dataclass
class GroupingResult:
    recipients: List[Recipient] = field(default_factory=list)
    skipped_phone: int = 0
    skipped_no_clave: int = 0


def build_clave_map(items: Iterable[Mapping[str, Any]]) -> Dict[str, str]:
    """
    Map normalised email -> new password. The last entry for an email wins;
    entries without an email or a password are ignored.
    """
    clave_by_correo: Dict[str, str] = {}
    for it in items:
        if not isinstance(it, Mapping):
            continue
        correo = normalize_email(it.get("correo"))
        clave = str(it.get("nuevaClave") or "").strip()
        if not correo or not clave:
            continue
        clave_by_correo[correo] = clave
    return clave_by_correo


def group_recipients(
    rows: Iterable[Mapping[str, Any]],
    clave_by_correo: Mapping[str, str],
) -> GroupingResult:
    """
    Group resolved rows by (phone, email), dropping duplicate service lines.

    Rows with an invalid phone or an email without a new password are counted
    and skipped. Recipients come back sorted by phone, then email.
    """
    result = GroupingResult()
    grouped: Dict[str, Recipient] = {}
    seen: Dict[str, set] = {}

    for row in rows:
        phone = to_e164(row.get("contacto"))
        if not is_valid_phone(phone):
            result.skipped_phone += 1
            continue

        correo = normalize_email(row.get("correo"))
        clave = clave_by_correo.get(correo)
        if not clave:
            result.skipped_no_clave += 1
            continue

        key = f"{phone}::{correo}"
        recipient = grouped.get(key)
        if recipient is None:
            recipient = Recipient(phone=phone, correo=correo, nueva_clave=clave, nombre=row.get("nombre") or None)
            grouped[key] = recipient
            seen[key] = set()

        line = ServiceLine.from_row(row)
        if line.key not in seen[key]:
            seen[key].add(line.key)
            recipient.items.append(line)

        if not recipient.nombre and row.get("nombre"):
            recipient.nombre = row["nombre"]

    result.recipients = sorted(grouped.values(), key=lambda r: (r.phone, r.correo))
    return result


@dataclass
class ExpiringRecipient:
    phone: str
    nombre: Optional[str] = None
    items: List[Dict[str, Any]] = field(default_factory=list)


def group_by_phone(rows: Iterable[Mapping[str, Any]]) -> List[ExpiringRecipient]:
    """One recipient per valid phone, in first-seen order; invalid phones are dropped."""
    grouped: Dict[str, ExpiringRecipient] = {}
    for row in rows:
        phone = to_e164(row.get("contacto"))
        if not is_valid_phone(phone):
            continue
        recipient = grouped.setdefault(phone, ExpiringRecipient(phone=phone, nombre=row.get("nombre") or None))
        recipient.items.append(dict(row))
        if not recipient.nombre and row.get("nombre"):
            recipient.nombre = row["nombre"]
    return list(grouped.values())
