"""
Ledger de comissões.

Implementa o cálculo único de:
- Total ganho (vendas aprovadas x valor de comissão da marca)
- Total pago (pagamentos registrados)
- Saldo disponível (ganho - pago)
- Extrato cronológico (comissões e pagamentos mesclados)

O cálculo é puro: recebe as duas coleções de eventos e devolve um
resultado novo, sem tocar nas entradas. Todo valor é somado em centavos
inteiros; a conversão para Decimal/texto só acontece na saída.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Dict, Iterable, List, Literal, Mapping, Optional, Tuple
import logging

from ..lib.models import Brand, CommissionPayment, Sale
from ..lib.money import formatar_brl, from_centavos, to_centavos
from ..lib.periodo import DateRange, as_aware

logger = logging.getLogger(__name__)

EntryKind = Literal['comissao', 'pagamento']

# ============================================================================
# TIPOS
# ============================================================================

@dataclass(frozen=True)
class LedgerEntry:
    """Linha do extrato. Pagamentos carregam valor negativo (dedução)."""
    kind: EntryKind
    seller_id: str
    record_id: str
    centavos: int
    timestamp: datetime
    brand_id: Optional[str] = None
    period_reference: Optional[str] = None
    receipt_url: Optional[str] = None

    @property
    def amount(self) -> Decimal:
        return from_centavos(self.centavos)

    def to_dict(self) -> dict:
        return {
            "tipo": self.kind,
            "sellerId": self.seller_id,
            "id": self.record_id,
            "valor": str(self.amount),
            "valorFormatado": formatar_brl(self.centavos),
            "data": self.timestamp.isoformat(),
            "brandId": self.brand_id,
            "periodo": self.period_reference,
            "comprovante": self.receipt_url,
        }


@dataclass(frozen=True)
class SaldoVendedor:
    seller_id: str
    earned_centavos: int = 0
    paid_centavos: int = 0

    @property
    def balance_centavos(self) -> int:
        return self.earned_centavos - self.paid_centavos

    def to_dict(self) -> dict:
        return {
            "sellerId": self.seller_id,
            "ganho": str(from_centavos(self.earned_centavos)),
            "pago": str(from_centavos(self.paid_centavos)),
            "saldo": str(from_centavos(self.balance_centavos)),
        }


@dataclass(frozen=True)
class LedgerResult:
    earned_centavos: int = 0
    paid_centavos: int = 0
    statement: Tuple[LedgerEntry, ...] = ()
    por_vendedor: Tuple[SaldoVendedor, ...] = ()
    promocoes_nao_aplicadas: Tuple[str, ...] = field(default=())

    @property
    def balance_centavos(self) -> int:
        return self.earned_centavos - self.paid_centavos

    @property
    def earned(self) -> Decimal:
        return from_centavos(self.earned_centavos)

    @property
    def paid(self) -> Decimal:
        return from_centavos(self.paid_centavos)

    @property
    def balance(self) -> Decimal:
        return from_centavos(self.balance_centavos)

    def to_dict(self, incluir_extrato: bool = True) -> dict:
        resultado = {
            "ganho": str(self.earned),
            "pago": str(self.paid),
            "saldo": str(self.balance),
            "ganhoFormatado": formatar_brl(self.earned_centavos),
            "pagoFormatado": formatar_brl(self.paid_centavos),
            "saldoFormatado": formatar_brl(self.balance_centavos),
            "porVendedor": [s.to_dict() for s in self.por_vendedor],
            "promocoesNaoAplicadas": list(self.promocoes_nao_aplicadas),
        }
        if incluir_extrato:
            resultado["extrato"] = [e.to_dict() for e in self.statement]
        return resultado


EMPTY_LEDGER = LedgerResult()

# ============================================================================
# CÁLCULO PURO
# ============================================================================

def _no_periodo(momento: datetime, date_range: Optional[DateRange]) -> bool:
    return date_range is None or date_range.contains(momento)


def compute_ledger(
    sales: Iterable[Sale],
    payments: Iterable[CommissionPayment],
    seller_ids: Iterable[str],
    date_range: Optional[DateRange] = None,
    brands: Optional[Mapping[str, Brand]] = None
) -> LedgerResult:
    """
    Calcula ganho, pago, saldo e extrato para um conjunto de vendedores.

    Args:
        sales: Vendas (qualquer status; só 'approved' conta)
        payments: Pagamentos de comissão
        seller_ids: Vendedores considerados
        date_range: Período inclusivo opcional
        brands: Marcas por id, usadas apenas para sinalizar promoções
            cadastradas que não entram no cálculo

    Returns:
        LedgerResult com totais em centavos e extrato decrescente
    """
    ids = frozenset(seller_ids)
    if not ids:
        return EMPTY_LEDGER

    entradas: List[LedgerEntry] = []
    ganhos: Dict[str, int] = {}
    pagos: Dict[str, int] = {}
    promocoes: List[str] = []

    for sale in sales:
        if sale.status != 'approved' or sale.seller_id not in ids:
            continue
        if not _no_periodo(sale.created_at, date_range):
            continue
        centavos = to_centavos(sale.commission_value)
        ganhos[sale.seller_id] = ganhos.get(sale.seller_id, 0) + centavos
        entradas.append(LedgerEntry(
            kind='comissao',
            seller_id=sale.seller_id,
            record_id=sale.id,
            centavos=centavos,
            timestamp=as_aware(sale.created_at),
            brand_id=sale.brand_id,
        ))
        brand = brands.get(sale.brand_id) if brands and sale.brand_id else None
        if brand and brand.promocao_vigente(as_aware(sale.created_at)):
            promocoes.append(sale.id)

    for payment in payments:
        if payment.seller_id not in ids:
            continue
        if not _no_periodo(payment.created_at, date_range):
            continue
        centavos = to_centavos(payment.amount)
        pagos[payment.seller_id] = pagos.get(payment.seller_id, 0) + centavos
        entradas.append(LedgerEntry(
            kind='pagamento',
            seller_id=payment.seller_id,
            record_id=payment.id,
            centavos=-centavos,
            timestamp=as_aware(payment.created_at),
            period_reference=payment.period_reference,
            receipt_url=payment.receipt_url,
        ))

    if promocoes:
        logger.warning(
            f"⚠️ {len(promocoes)} venda(s) em período de promoção da marca; "
            f"promoção NÃO aplicada ao valor da comissão"
        )

    entradas.sort(key=lambda e: (e.timestamp, e.kind, e.record_id), reverse=True)

    vendedores = sorted(set(ganhos) | set(pagos))
    por_vendedor = tuple(
        SaldoVendedor(seller_id=s, earned_centavos=ganhos.get(s, 0), paid_centavos=pagos.get(s, 0))
        for s in vendedores
    )

    return LedgerResult(
        earned_centavos=sum(ganhos.values()),
        paid_centavos=sum(pagos.values()),
        statement=tuple(entradas),
        por_vendedor=por_vendedor,
        promocoes_nao_aplicadas=tuple(sorted(promocoes)),
    )


# ============================================================================
# CONSULTAS SOBRE A FONTE DE EVENTOS
# ============================================================================

def scoped_balance(
    source,
    seller_ids: Iterable[str],
    date_range: Optional[DateRange] = None,
    brands: Optional[Mapping[str, Brand]] = None
) -> LedgerResult:
    """
    Saldo para relatórios: respeita o período e o conjunto de vendedores.

    Raises:
        SourceUnavailable: se a fonte não conseguir carregar os eventos
    """
    ids = frozenset(seller_ids)
    if not ids:
        return EMPTY_LEDGER

    sales = source.select_approved_sales(ids, date_range)
    payments = source.select_payments(ids, date_range)
    return compute_ledger(sales, payments, ids, date_range, brands)


def lifetime_ledger(source, seller_id: str) -> LedgerResult:
    """Histórico completo do vendedor, ignorando qualquer filtro de período."""
    return scoped_balance(source, {seller_id}, None)


def lifetime_balance(source, seller_id: str) -> Decimal:
    """Saldo usado para liberar pagamentos."""
    return lifetime_ledger(source, seller_id).balance
