"""
Cadastros administrativos de marcas e óticas.

Implementa funcionalidades para:
- Edição do valor de comissão e da promoção de cada marca
- Cadastro, edição e exclusão de óticas (base dos filtros geográficos)
"""

import re
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional
import logging

from ..lib.errors import ValidationError
from ..lib.models import Brand, OpticRef
from ..lib.money import CENTAVO
from ..lib.periodo import as_aware

logger = logging.getLogger(__name__)

BRAND_FIELDS = ('commission_value', 'promo_type', 'promo_value', 'promo_start_date', 'promo_end_date')
OPTIC_FIELDS = ('corporate_name', 'trade_name', 'cnpj', 'city', 'state')

# ============================================================================
# MARCAS
# ============================================================================

def _valor_monetario(valor: Any, campo: str, vazio: Optional[Decimal]) -> Optional[Decimal]:
    if valor is None or valor == "":
        return vazio
    try:
        dec = Decimal(str(valor))
    except InvalidOperation:
        raise ValidationError("Preencha um valor válido.", field=campo)
    if not dec.is_finite() or dec < 0:
        raise ValidationError("Preencha um valor válido.", field=campo)
    if dec != dec.quantize(CENTAVO):
        raise ValidationError("O valor deve ter no máximo duas casas decimais.", field=campo)
    return dec


def _data(valor: Any, campo: str) -> Optional[datetime]:
    if valor is None or valor == "":
        return None
    if isinstance(valor, datetime):
        return as_aware(valor)
    try:
        return as_aware(datetime.fromisoformat(str(valor).replace("Z", "+00:00")))
    except ValueError:
        raise ValidationError("Data da promoção inválida.", field=campo)


def atualizar_marca(source, brand_id: str, alteracoes: Dict[str, Any]) -> Optional[Brand]:
    """
    Atualiza comissão e promoção de uma marca.

    Campos vazios seguem a regra do cadastro: comissão vazia vira 0 e os
    campos de promoção vazios viram nulos. Só os campos enviados mudam.

    Returns:
        Brand atualizada, ou None se a marca não existe
    """
    desconhecidos = set(alteracoes) - set(BRAND_FIELDS)
    if desconhecidos:
        raise ValidationError(f"Campos não editáveis: {', '.join(sorted(desconhecidos))}", field="marca")
    if not alteracoes:
        raise ValidationError("Nenhuma alteração informada.", field="marca")

    payload: Dict[str, Any] = {}
    if 'commission_value' in alteracoes:
        comissao = _valor_monetario(alteracoes['commission_value'], 'commission_value', Decimal("0"))
        payload['commission_value'] = str(comissao)
    if 'promo_type' in alteracoes:
        payload['promo_type'] = (alteracoes['promo_type'] or "").strip() or None
    if 'promo_value' in alteracoes:
        promo = _valor_monetario(alteracoes['promo_value'], 'promo_value', None)
        payload['promo_value'] = str(promo) if promo is not None else None

    inicio = _data(alteracoes.get('promo_start_date'), 'promo_start_date')
    fim = _data(alteracoes.get('promo_end_date'), 'promo_end_date')
    if inicio and fim and inicio > fim:
        raise ValidationError("O fim da promoção deve ser posterior ao início.", field="promo_end_date")
    if 'promo_start_date' in alteracoes:
        payload['promo_start_date'] = inicio.isoformat() if inicio else None
    if 'promo_end_date' in alteracoes:
        payload['promo_end_date'] = fim.isoformat() if fim else None

    brand = source.update_brand(brand_id, payload)
    if brand:
        logger.info(f"✅ Marca {brand.name} atualizada: {sorted(payload)}")
    return brand


# ============================================================================
# ÓTICAS
# ============================================================================

def _payload_otica(dados: Dict[str, Any]) -> Dict[str, Any]:
    desconhecidos = set(dados) - set(OPTIC_FIELDS)
    if desconhecidos:
        raise ValidationError(f"Campos não editáveis: {', '.join(sorted(desconhecidos))}", field="otica")

    payload: Dict[str, Any] = {}
    for campo, valor in dados.items():
        valor = (valor or "").strip()
        if campo == 'cnpj':
            valor = re.sub(r"\D", "", valor)
        elif campo == 'state':
            valor = valor.upper()
        payload[campo] = valor or None

    if 'corporate_name' in payload and not payload['corporate_name']:
        raise ValidationError("Preencha a razão social.", field="corporate_name")
    if payload.get('state') and len(payload['state']) != 2:
        raise ValidationError("Informe a UF com duas letras.", field="state")
    return payload


def cadastrar_otica(source, dados: Dict[str, Any]) -> OpticRef:
    payload = _payload_otica(dados)
    if not payload.get('corporate_name'):
        raise ValidationError("Preencha a razão social.", field="corporate_name")
    optic = source.insert_optic(payload)
    logger.info(f"✅ Ótica {optic.corporate_name} cadastrada")
    return optic


def atualizar_otica(source, optic_id: str, dados: Dict[str, Any]) -> Optional[OpticRef]:
    payload = _payload_otica(dados)
    if not payload:
        raise ValidationError("Nenhuma alteração informada.", field="otica")
    optic = source.update_optic(optic_id, payload)
    if optic:
        logger.info(f"✅ Ótica {optic_id} atualizada")
    return optic


def excluir_otica(source, optic_id: str) -> bool:
    excluida = source.delete_optic(optic_id)
    if excluida:
        logger.info(f"🗑️ Ótica {optic_id} excluída")
    return excluida
