"""Election lifecycle: Próxima -> Activa -> Cerrada, derived from the dates.

The status stored on an election is never trusted. Every read goes through
:func:`evaluate_status`, which fails closed: an election whose dates cannot be
read is treated as ``Cerrada`` so a bad record can never reopen voting.
"""
import logging
from datetime import date, datetime, time
from typing import Optional, Union

from elecciones.models.election_model import Election, Status

logger = logging.getLogger(__name__)

DateLike = Union[date, datetime, str, None]

# End date is inclusive through its whole final day.
END_OF_DAY = time(23, 59, 59, 999000)


def _as_day(value: DateLike) -> Optional[date]:
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone()
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip())
        except ValueError:
            return None
    return None


def evaluate_status(start: DateLike, end: DateLike, now: DateLike = None) -> Status:
    start_day = _as_day(start)
    end_day = _as_day(end)
    if start_day is None or end_day is None:
        logger.warning(f"Unreadable election dates {start!r}..{end!r}, treating as closed")
        return Status.CERRADA

    today = _as_day(now if now is not None else datetime.now())
    if today is None:
        return Status.CERRADA

    current = datetime.combine(today, time.min)
    if current > datetime.combine(end_day, END_OF_DAY):
        return Status.CERRADA
    if current >= datetime.combine(start_day, time.min):
        return Status.ACTIVA
    return Status.PROXIMA


def election_status(election: Election, now: DateLike = None) -> Status:
    return evaluate_status(election.fecha_inicio, election.fecha_fin, now)


def refresh_status(election: Election, now: DateLike = None) -> Election:
    """Return a copy of ``election`` whose ``estado`` reflects ``now``."""
    status = election_status(election, now)
    if status is election.estado:
        return election
    return election.model_copy(update={"estado": status})


def results_are_public(election: Election, now: DateLike = None) -> bool:
    return election.resultados_publicos and election_status(election, now) is Status.CERRADA
