"""
Módulo de pagamentos de comissão.

Implementa funcionalidades para:
- Validação de pedidos de pagamento
- Bloqueio por vendedor (local e, se configurado, no Redis)
- Checagem de saldo vitalício imediatamente antes da escrita
- Upload de comprovantes
"""

import os
import threading
import time
import uuid
import weakref
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Optional, Union
import logging

from dotenv import load_dotenv

from ..lib.errors import ConstraintViolation, SourceUnavailable, ValidationError
from ..lib.models import CommissionPayment
from ..lib.money import formatar_brl, from_centavos, to_centavos
from ..lib.queries import RECEIPTS_BUCKET
from .ledger import lifetime_ledger

load_dotenv()
logger = logging.getLogger(__name__)

LOCK_TTL = int(os.getenv("OPTISALES_LOCK_TTL", "30"))
LOCK_WAIT_TIMEOUT = 10.0
LOCK_POLL_INTERVAL = 0.2

# Libera a chave só se ainda pertencer a quem a criou
RELEASE_SCRIPT = """
if redis.call('get', KEYS[1]) == ARGV[1] then
    return redis.call('del', KEYS[1])
end
return 0
"""

# ============================================================================
# TIPOS
# ============================================================================

@dataclass
class PedidoPagamento:
    seller_id: str
    amount: Union[Decimal, str, int, float, None]
    period_reference: Optional[str]
    receipt_url: Optional[str]


# ============================================================================
# LOCKS POR VENDEDOR
# ============================================================================

class SellerLocks:
    """
    Serializa a criação de pagamentos por vendedor.

    Dentro do processo usa um threading.Lock por vendedor. Com um cliente
    Redis, também reserva a chave pagamento-lock:{seller_id} (SET NX EX)
    para serializar entre processos.
    """

    def __init__(self, redis=None, ttl: int = LOCK_TTL, wait_timeout: float = LOCK_WAIT_TIMEOUT):
        self.redis = redis
        self.ttl = ttl
        self.wait_timeout = wait_timeout
        # Sai do mapa quando ninguém mais segura o lock do vendedor
        self._locks: "weakref.WeakValueDictionary[str, threading.Lock]" = weakref.WeakValueDictionary()
        self._locks_lock = threading.Lock()

    def get_lock(self, seller_id: str) -> threading.Lock:
        """Obtém ou cria o lock local do vendedor"""
        with self._locks_lock:
            lock = self._locks.get(seller_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[seller_id] = lock
            return lock

    def _acquire_redis(self, key: str) -> Optional[str]:
        if self.redis is None:
            return None
        token = uuid.uuid4().hex
        deadline = time.monotonic() + self.wait_timeout
        while True:
            try:
                acquired = self.redis.set(key, token, nx=True, ex=self.ttl)
            except Exception as e:
                logger.error(f"❌ Erro ao reservar lock {key}: {e}")
                raise SourceUnavailable("Não foi possível reservar o lock de pagamento") from e
            if acquired:
                return token
            if time.monotonic() >= deadline:
                logger.warning(f"⏰ Timeout aguardando lock: {key}")
                raise ConstraintViolation("Já existe um pagamento em processamento para este vendedor.")
            time.sleep(LOCK_POLL_INTERVAL)

    def _release_redis(self, key: str, token: Optional[str]):
        if self.redis is None or token is None:
            return
        try:
            self.redis.eval(RELEASE_SCRIPT, keys=[key], args=[token])
        except Exception as e:
            # A chave expira sozinha após o TTL
            logger.warning(f"⚠️ Erro ao liberar lock {key}: {e}")

    @contextmanager
    def hold(self, seller_id: str):
        key = f"pagamento-lock:{seller_id}"
        with self.get_lock(seller_id):
            token = self._acquire_redis(key)
            try:
                yield
            finally:
                self._release_redis(key, token)
                logger.debug(f"🔓 Lock liberado: {key}")


# ============================================================================
# VALIDAÇÃO E REGISTRO
# ============================================================================

def validar_pedido(pedido: PedidoPagamento) -> int:
    """
    Valida os campos obrigatórios do pedido.

    Returns:
        Valor do pagamento em centavos

    Raises:
        ValidationError: indicando o campo inválido
    """
    if not pedido.seller_id:
        raise ValidationError("Vendedor não informado.", field="seller_id")

    if pedido.amount is None or pedido.amount == "":
        raise ValidationError("Preencha um valor válido.", field="amount")
    try:
        valor = Decimal(str(pedido.amount))
    except InvalidOperation:
        raise ValidationError("Preencha um valor válido.", field="amount")
    if not valor.is_finite() or valor <= 0:
        raise ValidationError("Preencha um valor válido.", field="amount")
    if valor != valor.quantize(Decimal("0.01")):
        raise ValidationError("O valor deve ter no máximo duas casas decimais.", field="amount")

    if not (pedido.period_reference or "").strip():
        raise ValidationError(
            "Preencha o período de referência (Ex: Janeiro/2026).",
            field="period_reference"
        )
    if not (pedido.receipt_url or "").strip():
        raise ValidationError("Selecione um arquivo de comprovante.", field="receipt_url")

    return to_centavos(valor)


def registrar_pagamento(source, pedido: PedidoPagamento, locks: SellerLocks) -> CommissionPayment:
    """
    Registra um pagamento de comissão se houver saldo vitalício suficiente.

    O saldo é recalculado com o lock do vendedor já adquirido, e a escrita
    acontece antes de liberá-lo. Dois pedidos simultâneos para o mesmo
    vendedor nunca leem o mesmo saldo.

    Raises:
        ValidationError: campo ausente ou valor acima do saldo
        SourceUnavailable: falha ao ler eventos ou gravar o pagamento
    """
    centavos = validar_pedido(pedido)

    with locks.hold(pedido.seller_id):
        saldo = lifetime_ledger(source, pedido.seller_id).balance_centavos
        if centavos > saldo:
            logger.warning(
                f"⚠️ Pagamento recusado para {pedido.seller_id}: "
                f"{formatar_brl(centavos)} > saldo {formatar_brl(saldo)}"
            )
            raise ValidationError(
                "O valor pago não pode ser maior que o Saldo Disponível do vendedor.",
                field="amount"
            )

        payment = source.insert_payment({
            "seller_id": pedido.seller_id,
            "period_reference": pedido.period_reference.strip(),
            "amount": str(from_centavos(centavos)),
            "receipt_url": pedido.receipt_url.strip(),
        })

    logger.info(
        f"✅ Pagamento {payment.id} registrado para {pedido.seller_id}: "
        f"{formatar_brl(centavos)} (saldo restante {formatar_brl(saldo - centavos)})"
    )
    return payment


def enviar_comprovante(
    source,
    seller_id: str,
    filename: str,
    content: bytes,
    content_type: Optional[str] = None
) -> str:
    """
    Envia o comprovante para o bucket de recibos.

    Returns:
        URL pública do arquivo
    """
    if not content:
        raise ValidationError("Selecione um arquivo de comprovante.", field="receipt")

    ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else "bin"
    timestamp = int(datetime.now(timezone.utc).timestamp() * 1000)
    path = f"{seller_id}-{timestamp}.{ext}"

    source.upload_file(RECEIPTS_BUCKET, path, content, content_type or "application/octet-stream")
    return source.public_url(RECEIPTS_BUCKET, path)
