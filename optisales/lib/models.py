from pydantic import BaseModel
from datetime import datetime
from decimal import Decimal
from typing import Optional, Literal

from .periodo import as_aware

SaleStatus = Literal['pending', 'approved', 'rejected', 'needs_correction', 'paid']
SellerStatus = Literal['pending', 'approved', 'rejected']


class Brand(BaseModel):
    """Marca vinda da tabela brands."""
    id: str
    name: str
    commission_value: Decimal = Decimal("0")
    promo_type: Optional[str] = None
    promo_value: Optional[Decimal] = None
    promo_start_date: Optional[datetime] = None
    promo_end_date: Optional[datetime] = None

    def promocao_vigente(self, momento: datetime) -> bool:
        """Indica se existe promoção cadastrada cobrindo o momento informado."""
        if not self.promo_type or self.promo_value is None:
            return False
        momento = as_aware(momento)
        if self.promo_start_date and momento < as_aware(self.promo_start_date):
            return False
        if self.promo_end_date and momento > as_aware(self.promo_end_date):
            return False
        return True


class Sale(BaseModel):
    """
    Venda (nota fiscal enviada) vinda da tabela sales.

    commission_value é o valor ATUAL da marca, lido no momento da consulta
    via join com brands. Não existe snapshot no momento da aprovação.
    """
    id: str
    seller_id: str
    brand_id: Optional[str] = None
    commission_value: Decimal = Decimal("0")
    created_at: datetime
    status: SaleStatus = 'pending'
    invoice_photo_url: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    reviewer_id: Optional[str] = None
    seller_name: Optional[str] = None
    brand_name: Optional[str] = None


class CommissionPayment(BaseModel):
    """Pagamento de comissão registrado pelo administrador."""
    id: str
    seller_id: str
    amount: Decimal
    period_reference: Optional[str] = None
    receipt_url: Optional[str] = None
    created_at: datetime


class SellerProfile(BaseModel):
    """Perfil do representante (tabela profiles)."""
    id: str
    full_name: Optional[str] = None
    email: Optional[str] = None
    cpf: Optional[str] = None
    cnpj: Optional[str] = None
    optic_name: Optional[str] = None
    brand_id: Optional[str] = None
    role: str = 'representative'
    status: SellerStatus = 'pending'
    chave_pix: Optional[str] = None


class OpticRef(BaseModel):
    """Ótica cadastrada (tabela optics)."""
    id: str
    corporate_name: str
    trade_name: Optional[str] = None
    cnpj: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    active: bool = True
