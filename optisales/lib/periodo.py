"""
Intervalo de datas usado nos filtros de relatório.

Os limites são inclusivos em dias inteiros: de 00:00 do dia inicial até
o fim do dia final, no fuso horário de negócio (OPTISALES_TIMEZONE).
Qualquer um dos lados pode ficar em aberto.
"""

import os
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Tuple
from zoneinfo import ZoneInfo

from dotenv import load_dotenv

from .errors import ValidationError

load_dotenv()

DEFAULT_TIMEZONE = "America/Sao_Paulo"


def business_tz() -> ZoneInfo:
    return ZoneInfo(os.getenv("OPTISALES_TIMEZONE", DEFAULT_TIMEZONE))


def as_aware(momento: datetime) -> datetime:
    """Timestamps sem fuso vindos do banco são tratados como UTC."""
    if momento.tzinfo is None:
        return momento.replace(tzinfo=timezone.utc)
    return momento


@dataclass(frozen=True)
class DateRange:
    start: Optional[date] = None
    end: Optional[date] = None

    def __post_init__(self):
        if self.start and self.end and self.start > self.end:
            raise ValidationError(
                f"Data inicial {self.start.isoformat()} posterior à data final {self.end.isoformat()}",
                field="data_inicio",
            )

    @property
    def unrestricted(self) -> bool:
        return self.start is None and self.end is None

    def bounds(self, tz: Optional[ZoneInfo] = None) -> Tuple[Optional[datetime], Optional[datetime]]:
        """Retorna (início inclusivo, fim exclusivo) como datetimes com fuso."""
        tz = tz or business_tz()
        inicio = datetime.combine(self.start, time.min, tzinfo=tz) if self.start else None
        fim = datetime.combine(self.end + timedelta(days=1), time.min, tzinfo=tz) if self.end else None
        return inicio, fim

    def contains(self, momento: datetime, tz: Optional[ZoneInfo] = None) -> bool:
        inicio, fim = self.bounds(tz)
        momento = as_aware(momento)
        if inicio is not None and momento < inicio:
            return False
        if fim is not None and momento >= fim:
            return False
        return True


def parse_date_range(data_inicio: Optional[str], data_fim: Optional[str]) -> Optional[DateRange]:
    """
    Monta um DateRange a partir de strings YYYY-MM-DD.

    Sem nenhuma das datas, retorna None (sem restrição).
    """
    if not data_inicio and not data_fim:
        return None
    try:
        inicio = date.fromisoformat(data_inicio) if data_inicio else None
        fim = date.fromisoformat(data_fim) if data_fim else None
    except ValueError:
        raise ValidationError("Datas devem estar no formato YYYY-MM-DD", field="periodo")
    return DateRange(inicio, fim)
