"""Fakes compartilhados: fonte de eventos em memória e Redis em memória."""

import fnmatch
import itertools
import os
import threading
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

import pytest

# Variáveis exigidas pelo app antes de importar optisales.main
os.environ.setdefault("SUPABASE_URL", "https://example.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_KEY", "service-key-de-teste")
os.environ.setdefault("UPSTASH_REDIS_REST_URL", "https://example.upstash.io")
os.environ.setdefault("UPSTASH_REDIS_REST_TOKEN", "token-de-teste")
os.environ.setdefault("OPTISALES_TIMEZONE", "America/Sao_Paulo")

from optisales.lib.errors import ConstraintViolation, SourceUnavailable
from optisales.lib.models import Brand, CommissionPayment, OpticRef, Sale, SellerProfile
from optisales.lib.periodo import DateRange


def ts(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def make_sale(
    sale_id: str,
    seller_id: str = "s1",
    value: Any = "10.00",
    created_at: Optional[datetime] = None,
    status: str = "approved",
    brand_id: Optional[str] = "b1",
    seller_name: Optional[str] = None,
    brand_name: Optional[str] = None,
) -> Sale:
    return Sale(
        id=sale_id,
        seller_id=seller_id,
        brand_id=brand_id,
        commission_value=Decimal(str(value)),
        created_at=created_at or ts(2026, 1, 10, 12),
        status=status,
        seller_name=seller_name,
        brand_name=brand_name,
    )


def make_payment(
    payment_id: str,
    seller_id: str = "s1",
    amount: Any = "5.00",
    created_at: Optional[datetime] = None,
    period_reference: str = "Janeiro/2026",
) -> CommissionPayment:
    return CommissionPayment(
        id=payment_id,
        seller_id=seller_id,
        amount=Decimal(str(amount)),
        period_reference=period_reference,
        receipt_url=f"https://storage/receipts/{payment_id}.pdf",
        created_at=created_at or ts(2026, 1, 20, 12),
    )


class FakeEventSource:
    """Fonte de eventos em memória com a mesma interface da SupabaseEventSource."""

    def __init__(
        self,
        sales: Iterable[Sale] = (),
        payments: Iterable[CommissionPayment] = (),
        sellers: Iterable[SellerProfile] = (),
        optics: Iterable[OpticRef] = (),
        brands: Iterable[Brand] = (),
    ):
        self.sales: List[Sale] = list(sales)
        self.payments: List[CommissionPayment] = list(payments)
        self.sellers: List[SellerProfile] = list(sellers)
        self.optics: List[OpticRef] = list(optics)
        self.brands: List[Brand] = list(brands)
        self.tokens: Dict[str, str] = {}
        self.uploads: Dict[str, bytes] = {}
        self.fail = False
        self.fail_inserts = False
        self.constraint_on_delete = False
        self.calls: List[str] = []
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def _check(self, name: str):
        self.calls.append(name)
        if self.fail:
            raise SourceUnavailable(f"Falha ao {name}")

    def _com_marca(self, sale: Sale) -> Sale:
        """Comissão lida da marca atual, como no join com brands."""
        brand = next((b for b in self.brands if b.id == sale.brand_id), None)
        if brand is None:
            return sale
        return sale.model_copy(update={
            "commission_value": brand.commission_value,
            "brand_name": sale.brand_name or brand.name,
        })

    @staticmethod
    def _in_range(momento: datetime, date_range: Optional[DateRange]) -> bool:
        return date_range is None or date_range.contains(momento)

    def select_approved_sales(self, seller_ids, date_range=None) -> List[Sale]:
        self._check("select_approved_sales")
        ids = set(seller_ids)
        return [
            self._com_marca(s) for s in self.sales
            if s.status == "approved" and s.seller_id in ids and self._in_range(s.created_at, date_range)
        ]

    def select_sales(
        self, status=None, seller_ids=None, brand_id=None, date_range=None, mais_recentes_primeiro=True
    ) -> List[Sale]:
        self._check("select_sales")
        ids = set(seller_ids) if seller_ids is not None else None
        vendas = sorted(self.sales, key=lambda s: (s.created_at, s.id), reverse=mais_recentes_primeiro)
        return [
            self._com_marca(s) for s in vendas
            if (status is None or s.status == status)
            and (ids is None or s.seller_id in ids)
            and (brand_id is None or s.brand_id == brand_id)
            and self._in_range(s.created_at, date_range)
        ]

    def insert_sale(self, dados: Dict[str, Any]) -> Sale:
        self._check("insert_sale")
        with self._lock:
            sale = Sale(id=f"sale-{next(self._ids)}", created_at=datetime.now(timezone.utc), **dados)
            self.sales.append(sale)
        return self._com_marca(sale)

    def update_sale_status(self, sale_id, status, reviewer_id, from_statuses=None) -> Optional[Sale]:
        self._check("update_sale_status")
        for i, sale in enumerate(self.sales):
            if sale.id != sale_id:
                continue
            if from_statuses is not None and sale.status not in from_statuses:
                return None
            atualizada = sale.model_copy(update={
                "status": status,
                "reviewer_id": reviewer_id,
                "reviewed_at": datetime.now(timezone.utc),
            })
            self.sales[i] = atualizada
            return self._com_marca(atualizada)
        return None

    def select_payments(self, seller_ids, date_range=None) -> List[CommissionPayment]:
        self._check("select_payments")
        ids = set(seller_ids)
        return [
            p for p in self.payments
            if p.seller_id in ids and self._in_range(p.created_at, date_range)
        ]

    def insert_payment(self, dados: Dict[str, Any]) -> CommissionPayment:
        self._check("insert_payment")
        if self.fail_inserts:
            raise SourceUnavailable("Falha ao registrar pagamento")
        with self._lock:
            payment = CommissionPayment(
                id=f"pay-{next(self._ids)}",
                created_at=datetime.now(timezone.utc),
                **dados
            )
            self.payments.append(payment)
        return payment

    def select_sellers(self) -> List[SellerProfile]:
        self._check("select_sellers")
        return [s for s in self.sellers if s.role == "representative"]

    def select_optics(self) -> List[OpticRef]:
        self._check("select_optics")
        return list(self.optics)

    def select_brands(self) -> List[Brand]:
        self._check("select_brands")
        return list(self.brands)

    def get_profile(self, user_id) -> Optional[SellerProfile]:
        # Perfis seguem disponíveis mesmo com fail ligado (sessão resolvida)
        self.calls.append("get_profile")
        return next((s for s in self.sellers if s.id == user_id), None)

    def update_seller_status(self, seller_id, status) -> Optional[SellerProfile]:
        self._check("update_seller_status")
        for i, seller in enumerate(self.sellers):
            if seller.id == seller_id:
                self.sellers[i] = seller.model_copy(update={"status": status})
                return self.sellers[i]
        return None

    def delete_seller(self, seller_id) -> bool:
        self._check("delete_seller")
        if self.constraint_on_delete:
            raise ConstraintViolation("violates foreign key constraint", code="23503")
        antes = len(self.sellers)
        self.sellers = [s for s in self.sellers if s.id != seller_id]
        return len(self.sellers) < antes

    def update_brand(self, brand_id, dados) -> Optional[Brand]:
        self._check("update_brand")
        for i, brand in enumerate(self.brands):
            if brand.id == brand_id:
                self.brands[i] = Brand(**{**brand.model_dump(), **dados})
                return self.brands[i]
        return None

    def insert_optic(self, dados) -> OpticRef:
        self._check("insert_optic")
        optic = OpticRef(id=f"optic-{next(self._ids)}", **dados)
        self.optics.append(optic)
        return optic

    def update_optic(self, optic_id, dados) -> Optional[OpticRef]:
        self._check("update_optic")
        for i, optic in enumerate(self.optics):
            if optic.id == optic_id:
                self.optics[i] = OpticRef(**{**optic.model_dump(), **dados})
                return self.optics[i]
        return None

    def delete_optic(self, optic_id) -> bool:
        self._check("delete_optic")
        antes = len(self.optics)
        self.optics = [o for o in self.optics if o.id != optic_id]
        return len(self.optics) < antes

    def get_user_id(self, access_token) -> Optional[str]:
        return self.tokens.get(access_token)

    def upload_file(self, bucket, path, content, content_type) -> str:
        self._check("upload_file")
        self.uploads[f"{bucket}/{path}"] = content
        return path

    def public_url(self, bucket, path) -> str:
        return f"https://example.supabase.co/storage/v1/object/public/{bucket}/{path}"


class FakeRedis:
    """Subconjunto do cliente upstash_redis usado pelo app."""

    def __init__(self):
        self.store: Dict[str, Any] = {}
        self.fail = False
        self._lock = threading.Lock()

    def _check(self):
        if self.fail:
            raise ConnectionError("redis indisponível")

    def ping(self):
        self._check()
        return "PONG"

    def get(self, key):
        self._check()
        return self.store.get(key)

    def set(self, key, value, ex=None, nx=False):
        self._check()
        with self._lock:
            if nx and key in self.store:
                return None
            self.store[key] = value
            return "OK"

    def delete(self, *keys):
        self._check()
        with self._lock:
            return sum(1 for k in keys if self.store.pop(k, None) is not None)

    def keys(self, pattern):
        self._check()
        return [k for k in list(self.store) if fnmatch.fnmatch(k, pattern)]

    def eval(self, script, keys=None, args=None):
        self._check()
        key, token = keys[0], args[0]
        with self._lock:
            if self.store.get(key) == token:
                del self.store[key]
                return 1
            return 0


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def source() -> FakeEventSource:
    return FakeEventSource()
