"""
Fonte de eventos sobre o Supabase.

Encapsula todas as consultas e escritas na plataforma. Falhas de rede,
autenticação ou storage viram SourceUnavailable; violação de chave
estrangeira vira ConstraintViolation. Nenhum outro módulo fala com o
cliente Supabase diretamente.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional

from postgrest.exceptions import APIError
from supabase import AuthApiError

from .errors import ConstraintViolation, SourceUnavailable
from .models import Brand, CommissionPayment, OpticRef, Sale, SellerProfile
from .periodo import DateRange
from .queries import (
    BRANDS_TABLE,
    FOREIGN_KEY_VIOLATION,
    OPTICS_TABLE,
    PAYMENTS_TABLE,
    PROFILES_TABLE,
    SALES_TABLE,
    SELECT_MARCAS,
    SELECT_OTICAS,
    SELECT_PAGAMENTOS,
    SELECT_VENDAS_COMISSAO,
    SELECT_VENDAS_COMPLETAS,
    SELECT_VENDEDORES,
)

logger = logging.getLogger(__name__)

# Limite padrão de linhas por resposta do PostgREST
PAGE_SIZE = 1000


# ============================================================================
# CONVERSÃO DE LINHAS
# ============================================================================

def sale_from_row(row: Dict[str, Any]) -> Sale:
    """Achata os joins de brands/profiles numa Sale."""
    brand = row.get("brands") or {}
    profile = row.get("profiles") or {}
    return Sale(
        id=str(row["id"]),
        seller_id=str(row["seller_id"]),
        brand_id=str(row["brand_id"]) if row.get("brand_id") else None,
        commission_value=brand.get("commission_value") or 0,
        created_at=row["created_at"],
        status=row.get("status") or "pending",
        invoice_photo_url=row.get("invoice_photo_url"),
        reviewed_at=row.get("reviewed_at"),
        reviewer_id=row.get("reviewer_id"),
        seller_name=profile.get("full_name"),
        brand_name=brand.get("name"),
    )


def _iso(momento: datetime) -> str:
    return momento.astimezone(timezone.utc).isoformat()


# ============================================================================
# FONTE SUPABASE
# ============================================================================

class SupabaseEventSource:
    """Consultas e escritas do OptiSales na plataforma Supabase."""

    def __init__(self, client):
        self.client = client

    # ------------------------------------------------------------------
    # Infra
    # ------------------------------------------------------------------

    def _executar(self, descricao: str, operacao: Callable[[], Any]) -> Any:
        try:
            return operacao()
        except APIError as e:
            if e.code == FOREIGN_KEY_VIOLATION:
                logger.warning(f"⚠️ Violação de integridade em {descricao}: {e.message}")
                raise ConstraintViolation(e.message or "Violação de integridade", code=e.code) from e
            logger.error(f"❌ Erro da API em {descricao}: {e.message}")
            raise SourceUnavailable(f"Falha ao {descricao}") from e
        except Exception as e:
            logger.error(f"❌ Erro ao {descricao}: {e}")
            raise SourceUnavailable(f"Falha ao {descricao}") from e

    def _paginar(self, descricao: str, montar: Callable[[], Any]) -> List[Dict[str, Any]]:
        """Percorre todas as páginas de um select (o PostgREST corta em PAGE_SIZE)."""
        linhas: List[Dict[str, Any]] = []
        inicio = 0
        while True:
            fim = inicio + PAGE_SIZE - 1
            resposta = self._executar(descricao, lambda: montar().range(inicio, fim).execute())
            pagina = resposta.data or []
            linhas.extend(pagina)
            if len(pagina) < PAGE_SIZE:
                return linhas
            inicio += PAGE_SIZE

    @staticmethod
    def _aplicar_periodo(query, date_range: Optional[DateRange]):
        if date_range is None:
            return query
        inicio, fim = date_range.bounds()
        if inicio is not None:
            query = query.gte("created_at", _iso(inicio))
        if fim is not None:
            query = query.lt("created_at", _iso(fim))
        return query

    # ------------------------------------------------------------------
    # Vendas
    # ------------------------------------------------------------------

    def select_approved_sales(
        self,
        seller_ids: Iterable[str],
        date_range: Optional[DateRange] = None
    ) -> List[Sale]:
        ids = sorted(set(seller_ids))
        if not ids:
            return []

        def montar():
            query = (
                self.client.table(SALES_TABLE)
                .select(SELECT_VENDAS_COMISSAO)
                .eq("status", "approved")
                .in_("seller_id", ids)
            )
            return self._aplicar_periodo(query, date_range).order("created_at").order("id")

        return [sale_from_row(r) for r in self._paginar("buscar vendas aprovadas", montar)]

    def select_sales(
        self,
        status: Optional[str] = None,
        seller_ids: Optional[Iterable[str]] = None,
        brand_id: Optional[str] = None,
        date_range: Optional[DateRange] = None,
        mais_recentes_primeiro: bool = True
    ) -> List[Sale]:
        """Vendas em qualquer status, com nome do vendedor e da marca."""
        ids = sorted(set(seller_ids)) if seller_ids is not None else None
        if ids is not None and not ids:
            return []

        def montar():
            query = self.client.table(SALES_TABLE).select(SELECT_VENDAS_COMPLETAS)
            if status:
                query = query.eq("status", status)
            if ids is not None:
                query = query.in_("seller_id", ids)
            if brand_id:
                query = query.eq("brand_id", brand_id)
            query = self._aplicar_periodo(query, date_range)
            return query.order("created_at", desc=mais_recentes_primeiro).order("id")

        return [sale_from_row(r) for r in self._paginar("buscar vendas", montar)]

    def insert_sale(self, dados: Dict[str, Any]) -> Sale:
        resposta = self._executar(
            "registrar venda",
            lambda: self.client.table(SALES_TABLE).insert(dados).execute()
        )
        return sale_from_row(resposta.data[0])

    def update_sale_status(
        self,
        sale_id: str,
        status: str,
        reviewer_id: Optional[str],
        from_statuses: Optional[Iterable[str]] = None
    ) -> Optional[Sale]:
        """Atualiza o status; com from_statuses, só altera vendas nesses status."""
        payload = {
            "status": status,
            "reviewed_at": datetime.now(timezone.utc).isoformat(),
            "reviewer_id": reviewer_id,
        }

        def montar():
            query = self.client.table(SALES_TABLE).update(payload).eq("id", sale_id)
            if from_statuses is not None:
                query = query.in_("status", sorted(from_statuses))
            return query

        resposta = self._executar(
            "atualizar status da venda",
            lambda: montar().execute()
        )
        if not resposta.data:
            return None
        return sale_from_row(resposta.data[0])

    # ------------------------------------------------------------------
    # Pagamentos
    # ------------------------------------------------------------------

    def select_payments(
        self,
        seller_ids: Iterable[str],
        date_range: Optional[DateRange] = None
    ) -> List[CommissionPayment]:
        ids = sorted(set(seller_ids))
        if not ids:
            return []

        def montar():
            query = (
                self.client.table(PAYMENTS_TABLE)
                .select(SELECT_PAGAMENTOS)
                .in_("seller_id", ids)
            )
            return self._aplicar_periodo(query, date_range).order("created_at").order("id")

        return [CommissionPayment(**r) for r in self._paginar("buscar pagamentos", montar)]

    def insert_payment(self, dados: Dict[str, Any]) -> CommissionPayment:
        resposta = self._executar(
            "registrar pagamento",
            lambda: self.client.table(PAYMENTS_TABLE).insert(dados).execute()
        )
        return CommissionPayment(**resposta.data[0])

    # ------------------------------------------------------------------
    # Cadastros
    # ------------------------------------------------------------------

    def select_sellers(self) -> List[SellerProfile]:
        def montar():
            return (
                self.client.table(PROFILES_TABLE)
                .select(SELECT_VENDEDORES)
                .eq("role", "representative")
                .order("full_name")
                .order("id")
            )

        return [SellerProfile(**r) for r in self._paginar("buscar vendedores", montar)]

    def select_optics(self) -> List[OpticRef]:
        def montar():
            return self.client.table(OPTICS_TABLE).select(SELECT_OTICAS).order("corporate_name").order("id")

        return [OpticRef(**r) for r in self._paginar("buscar óticas", montar)]

    def select_brands(self) -> List[Brand]:
        def montar():
            return self.client.table(BRANDS_TABLE).select(SELECT_MARCAS).order("name").order("id")

        return [Brand(**r) for r in self._paginar("buscar marcas", montar)]

    def get_profile(self, user_id: str) -> Optional[SellerProfile]:
        resposta = self._executar(
            "buscar perfil",
            lambda: self.client.table(PROFILES_TABLE).select(SELECT_VENDEDORES).eq("id", user_id).limit(1).execute()
        )
        if not resposta.data:
            return None
        return SellerProfile(**resposta.data[0])

    def update_seller_status(self, seller_id: str, status: str) -> Optional[SellerProfile]:
        resposta = self._executar(
            "atualizar status do vendedor",
            lambda: self.client.table(PROFILES_TABLE).update({"status": status}).eq("id", seller_id).execute()
        )
        if not resposta.data:
            return None
        return SellerProfile(**resposta.data[0])

    def delete_seller(self, seller_id: str) -> bool:
        resposta = self._executar(
            "excluir vendedor",
            lambda: self.client.table(PROFILES_TABLE).delete().eq("id", seller_id).execute()
        )
        return bool(resposta.data)

    def update_brand(self, brand_id: str, dados: Dict[str, Any]) -> Optional[Brand]:
        resposta = self._executar(
            "atualizar marca",
            lambda: self.client.table(BRANDS_TABLE).update(dados).eq("id", brand_id).execute()
        )
        if not resposta.data:
            return None
        return Brand(**resposta.data[0])

    def insert_optic(self, dados: Dict[str, Any]) -> OpticRef:
        resposta = self._executar(
            "cadastrar ótica",
            lambda: self.client.table(OPTICS_TABLE).insert(dados).execute()
        )
        return OpticRef(**resposta.data[0])

    def update_optic(self, optic_id: str, dados: Dict[str, Any]) -> Optional[OpticRef]:
        resposta = self._executar(
            "atualizar ótica",
            lambda: self.client.table(OPTICS_TABLE).update(dados).eq("id", optic_id).execute()
        )
        if not resposta.data:
            return None
        return OpticRef(**resposta.data[0])

    def delete_optic(self, optic_id: str) -> bool:
        resposta = self._executar(
            "excluir ótica",
            lambda: self.client.table(OPTICS_TABLE).delete().eq("id", optic_id).execute()
        )
        return bool(resposta.data)

    # ------------------------------------------------------------------
    # Auth e Storage
    # ------------------------------------------------------------------

    def get_user_id(self, access_token: str) -> Optional[str]:
        """
        Valida o JWT do usuário na Auth e retorna o id, ou None se inválido.

        Raises:
            SourceUnavailable: Auth fora do ar ou respondendo com erro 5xx
        """
        try:
            resposta = self.client.auth.get_user(access_token)
        except AuthApiError as e:
            if e.status is not None and e.status >= 500:
                logger.error(f"❌ Erro da Auth ao validar token: {e.message}")
                raise SourceUnavailable("Falha ao validar token") from e
            logger.warning(f"⚠️ Token rejeitado pela Auth: {e.message}")
            return None
        except Exception as e:
            logger.error(f"❌ Erro ao validar token: {e}")
            raise SourceUnavailable("Falha ao validar token") from e
        user = getattr(resposta, "user", None)
        return str(user.id) if user else None

    def upload_file(self, bucket: str, path: str, content: bytes, content_type: str) -> str:
        self._executar(
            f"enviar arquivo para {bucket}",
            lambda: self.client.storage.from_(bucket).upload(
                path=path,
                file=content,
                file_options={"content-type": content_type}
            )
        )
        logger.info(f"💾 Arquivo enviado: {bucket}/{path}")
        return path

    def public_url(self, bucket: str, path: str) -> str:
        url = self._executar(
            f"obter URL pública em {bucket}",
            lambda: self.client.storage.from_(bucket).get_public_url(path)
        )
        return url.rstrip("?")
