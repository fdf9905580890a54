"""
Calendar helpers shared by the schedule expander and the notifiers.

Operating days are stored with the Spanish short names the admin UI writes
("Lun" ... "Dom"); the full names are accepted too.
"""
import datetime as dt
from zoneinfo import ZoneInfo

# Indexed by date.weekday(): Monday == 0
WEEKDAY_SHORT = ("Lun", "Mar", "Mie", "Jue", "Vie", "Sab", "Dom")
WEEKDAY_FULL = ("Lunes", "Martes", "Miércoles", "Jueves", "Viernes", "Sábado", "Domingo")
WEEKDAY_NAMES = frozenset(WEEKDAY_SHORT) | frozenset(WEEKDAY_FULL)

MONTHS = (
    "enero", "febrero", "marzo", "abril", "mayo", "junio",
    "julio", "agosto", "septiembre", "octubre", "noviembre", "diciembre",
)


def weekday_names(day: dt.date) -> tuple[str, str]:
    """Return (short, full) weekday names for ``day``."""
    idx = day.weekday()
    return WEEKDAY_SHORT[idx], WEEKDAY_FULL[idx]


def format_long_date(day: dt.date) -> str:
    """'sábado, 24 de octubre de 2026' (es-MX long form)."""
    full = WEEKDAY_FULL[day.weekday()].lower()
    return f"{full}, {day.day} de {MONTHS[day.month - 1]} de {day.year}"


def format_hhmm(value: dt.time | None) -> str:
    return value.strftime("%H:%M") if value else ""


def format_hhmmss(value: dt.time) -> str:
    return value.strftime("%H:%M:%S")


def today_in(tz_name: str) -> dt.date:
    return dt.datetime.now(ZoneInfo(tz_name)).date()


def utcnow() -> dt.datetime:
    """Naive UTC now, truncated to whole seconds (what DATETIME columns keep)."""
    return dt.datetime.now(dt.timezone.utc).replace(tzinfo=None, microsecond=0)
