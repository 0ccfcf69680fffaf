"""
Módulo de vendas (notas fiscais).

Implementa funcionalidades para:
- Registro de notas enviadas pelos representantes
- Auditoria (aprovar, recusar, pedir correção)
- Ranking de vendedores por vendas aprovadas
- Resumo de status e mix de marcas
"""

from dataclasses import dataclass, asdict
from datetime import date, datetime, timedelta, timezone
from typing import Dict, Iterable, List, Literal, Optional
import logging

from ..lib.errors import ConstraintViolation, ValidationError
from ..lib.models import Sale, SellerProfile
from ..lib.periodo import DateRange, as_aware, business_tz

logger = logging.getLogger(__name__)

# ============================================================================
# REGRAS DE AUDITORIA
# ============================================================================

AUDIT_DECISIONS = ('approved', 'rejected', 'needs_correction')

# Só vendas ainda em análise podem receber decisão
AUDITABLE_STATUSES = ('pending', 'needs_correction')

RankingPeriod = Literal['all', 'current_month', 'last_30_days']

# ============================================================================
# TIPOS
# ============================================================================

@dataclass
class RankingVendedor:
    sellerId: str
    sellerName: str
    salesCount: int
    lastSale: str
    posicao: int


@dataclass
class ResumoVendas:
    total: int
    approved: int
    pending: int
    rejected: int
    needsCorrection: int
    approvalRate: int
    brandMix: List[dict]


# ============================================================================
# REGISTRO E AUDITORIA
# ============================================================================

def registrar_venda(source, seller: SellerProfile, invoice_path: str) -> Sale:
    """
    Registra uma nota enviada pelo representante, sempre como 'pending'.

    A marca vem do perfil do vendedor; o arquivo já deve estar no bucket
    de notas fiscais.
    """
    if seller.status != 'approved':
        raise ValidationError("Seu cadastro ainda aguarda aprovação.", field="seller")
    if not seller.brand_id:
        raise ValidationError("Perfil sem marca vinculada.", field="brand_id")
    if not (invoice_path or "").strip():
        raise ValidationError("Selecione a foto da nota fiscal.", field="invoice_photo_url")

    sale = source.insert_sale({
        "seller_id": seller.id,
        "brand_id": seller.brand_id,
        "invoice_photo_url": invoice_path.strip(),
        "status": "pending",
    })
    logger.info(f"✅ Nota {sale.id} registrada para {seller.id}")
    return sale


def auditar_venda(source, sale_id: str, status: str, reviewer_id: Optional[str]) -> Sale:
    """
    Aplica a decisão do administrador a uma venda em análise.

    Raises:
        ValidationError: decisão desconhecida
        ConstraintViolation: venda inexistente ou já auditada
    """
    if status not in AUDIT_DECISIONS:
        raise ValidationError(
            f"Status de auditoria inválido: {status}. Use {', '.join(AUDIT_DECISIONS)}.",
            field="status"
        )

    sale = source.update_sale_status(sale_id, status, reviewer_id, from_statuses=AUDITABLE_STATUSES)
    if sale is None:
        raise ConstraintViolation("Venda não encontrada ou já auditada.")

    logger.info(f"✅ Venda {sale_id} auditada: {status} (revisor {reviewer_id})")
    return sale


# ============================================================================
# RANKING
# ============================================================================

def periodo_ranking(period: str, agora: Optional[datetime] = None) -> Optional[DateRange]:
    """Converte o filtro de período do ranking num DateRange."""
    if period == 'all':
        return None
    hoje = (agora or datetime.now(timezone.utc)).astimezone(business_tz()).date()
    if period == 'current_month':
        return DateRange(start=date(hoje.year, hoje.month, 1))
    if period == 'last_30_days':
        return DateRange(start=hoje - timedelta(days=30))
    raise ValidationError(f"Período inválido: {period}", field="period")


def calcular_ranking(sales: Iterable[Sale], limite: Optional[int] = None) -> List[RankingVendedor]:
    """
    Conta vendas aprovadas por vendedor, do maior para o menor.

    Empates são ordenados pela venda mais recente e depois pelo id.
    """
    if limite is not None and limite < 1:
        raise ValidationError(f"Limite inválido: {limite}", field="limite")

    contagem: Dict[str, dict] = {}
    for sale in sales:
        if sale.status != 'approved':
            continue
        item = contagem.setdefault(sale.seller_id, {
            "name": sale.seller_name or "Vendedor",
            "count": 0,
            "last": as_aware(sale.created_at),
        })
        item["count"] += 1
        if as_aware(sale.created_at) > item["last"]:
            item["last"] = as_aware(sale.created_at)

    ordenado = sorted(
        contagem.items(),
        key=lambda kv: (-kv[1]["count"], -kv[1]["last"].timestamp(), kv[0])
    )
    if limite is not None:
        ordenado = ordenado[:limite]

    return [
        RankingVendedor(
            sellerId=seller_id,
            sellerName=info["name"],
            salesCount=info["count"],
            lastSale=info["last"].isoformat(),
            posicao=posicao,
        )
        for posicao, (seller_id, info) in enumerate(ordenado, start=1)
    ]


def fetch_ranking_vendedores(
    source,
    brand_id: Optional[str] = None,
    period: str = 'all',
    limite: Optional[int] = None
) -> List[dict]:
    sales = source.select_sales(status='approved', brand_id=brand_id, date_range=periodo_ranking(period))
    return [asdict(r) for r in calcular_ranking(sales, limite)]


# ============================================================================
# RESUMO
# ============================================================================

def resumir_vendas(sales: Iterable[Sale]) -> ResumoVendas:
    sales = list(sales)
    por_status: Dict[str, int] = {}
    marcas: Dict[str, int] = {}
    for sale in sales:
        por_status[sale.status] = por_status.get(sale.status, 0) + 1
        if sale.brand_name:
            marcas[sale.brand_name] = marcas.get(sale.brand_name, 0) + 1

    aprovadas = por_status.get('approved', 0)
    revisadas = len(sales) - por_status.get('pending', 0)
    taxa = round(aprovadas * 100 / revisadas) if revisadas else 0

    total_marcas = sum(marcas.values())
    mix = [
        {"name": nome, "count": qtd, "percent": round(qtd * 100 / total_marcas)}
        for nome, qtd in sorted(marcas.items(), key=lambda kv: (-kv[1], kv[0]))[:4]
    ]

    return ResumoVendas(
        total=len(sales),
        approved=aprovadas,
        pending=por_status.get('pending', 0),
        rejected=por_status.get('rejected', 0),
        needsCorrection=por_status.get('needs_correction', 0),
        approvalRate=taxa,
        brandMix=mix,
    )


def fetch_resumo_vendas(source, date_range: Optional[DateRange] = None) -> dict:
    return asdict(resumir_vendas(source.select_sales(date_range=date_range)))
