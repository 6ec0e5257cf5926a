"""
Normalización de timestamps de cliente.

Los dispositivos envían el momento de captura como ISO-8601, como número
(epoch en ms, igual que Date.now()) o como datetime. Todo se convierte a
epoch en milisegundos (int) antes de compararse: la resolución de conflictos
trabaja con granularidad de milisegundo.
"""

import math
from datetime import datetime, timedelta, timezone

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_ONE_MS = timedelta(milliseconds=1)
# 9999-12-31T23:59:59.999Z; cabe en BigInteger y en INTEGER de SQLite
MAX_EPOCH_MS = 253_402_300_799_999


def to_epoch_ms(value) -> int:
    """
    Convierte un timestamp de cliente a epoch en milisegundos.
    Lanza ValueError si el valor no es interpretable o está fuera de rango.
    """
    if isinstance(value, bool) or value is None:
        raise ValueError("timestamp requerido")

    if isinstance(value, datetime):
        ms = _datetime_to_ms(value)
    elif isinstance(value, (int, float)):
        if not math.isfinite(value):
            raise ValueError("timestamp inválido")
        ms = int(value)
    elif isinstance(value, str):
        ms = _parse_string(value.strip())
    else:
        raise ValueError(f"tipo de timestamp no soportado: {type(value).__name__}")

    if ms < 0:
        raise ValueError("timestamp anterior a 1970")
    if ms > MAX_EPOCH_MS:
        raise ValueError("timestamp posterior al año 9999")
    return ms


def from_epoch_ms(ms: int) -> datetime:
    """Epoch en ms → datetime UTC."""
    return EPOCH + timedelta(milliseconds=ms)


def now_ms() -> int:
    return _datetime_to_ms(datetime.now(timezone.utc))


def _datetime_to_ms(value: datetime) -> int:
    # datetimes naive se interpretan como UTC
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return (value - EPOCH) // _ONE_MS


def _parse_string(value: str) -> int:
    if not value:
        raise ValueError("timestamp vacío")
    try:
        return int(float(value)) if _looks_numeric(value) else _datetime_to_ms(
            datetime.fromisoformat(value.replace("Z", "+00:00"))
        )
    except ValueError:
        raise ValueError(f"timestamp inválido: {value!r}")


def _looks_numeric(value: str) -> bool:
    return value.replace(".", "", 1).lstrip("-").isdigit()
