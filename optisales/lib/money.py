"""
Conversões monetárias.

Valores circulam como Decimal nos modelos e como inteiros em centavos
dentro do ledger. A formatação em reais só acontece na apresentação.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Union

CENTAVO = Decimal("0.01")

Numero = Union[Decimal, int, float, str, None]


def to_centavos(valor: Numero) -> int:
    """
    Converte um valor monetário para centavos inteiros.

    Floats passam por str() antes de virar Decimal, para que 0.1 seja
    lido como "0.1" e não como a aproximação binária.
    """
    if valor is None or valor == "":
        return 0
    if isinstance(valor, float):
        valor = str(valor)
    dec = Decimal(valor).quantize(CENTAVO, rounding=ROUND_HALF_UP)
    return int(dec * 100)


def from_centavos(centavos: int) -> Decimal:
    return (Decimal(centavos) / 100).quantize(CENTAVO)


def formatar_brl(centavos: int) -> str:
    """Formata centavos no padrão brasileiro: R$ 1.234,56 / -R$ 5,00"""
    sinal = "-" if centavos < 0 else ""
    reais, cents = divmod(abs(centavos), 100)
    inteiro = f"{reais:,}".replace(",", ".")
    return f"{sinal}R$ {inteiro},{cents:02d}"
