"""Cadastro de representantes: aprovação e exclusão."""

import logging
from typing import Optional

from ..lib.errors import ConstraintViolation, ValidationError
from ..lib.models import SellerProfile

logger = logging.getLogger(__name__)

SELLER_STATUSES = ('pending', 'approved', 'rejected')

MSG_VENDEDOR_COM_HISTORICO = (
    "Não é possível excluir este vendedor pois ele possui vendas ou histórico registrado."
)


def atualizar_status_vendedor(source, seller_id: str, status: str) -> Optional[SellerProfile]:
    if status not in SELLER_STATUSES:
        raise ValidationError(f"Status de vendedor inválido: {status}", field="status")
    seller = source.update_seller_status(seller_id, status)
    if seller:
        logger.info(f"✅ Vendedor {seller_id} agora está {status}")
    return seller


def excluir_vendedor(source, seller_id: str) -> bool:
    """
    Exclui o perfil do vendedor.

    Vendas ou pagamentos vinculados impedem a exclusão (chave estrangeira);
    nesse caso a mensagem específica é devolvida ao usuário.
    """
    try:
        excluido = source.delete_seller(seller_id)
    except ConstraintViolation as e:
        raise ConstraintViolation(MSG_VENDEDOR_COM_HISTORICO, code=e.code) from e

    if excluido:
        logger.info(f"🗑️ Vendedor {seller_id} excluído")
    return excluido
