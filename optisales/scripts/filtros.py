"""
Resolução de filtros hierárquicos de relatório.

Traduz a seleção estado -> cidade -> ótica -> vendedor no conjunto
concreto de vendedores enviado ao ledger. Seleções de nível inferior
que deixam de ser coerentes com um nível superior voltam para "all".
"""

from dataclasses import dataclass, replace
from typing import Dict, FrozenSet, Iterable, List, Tuple
import logging

from ..lib.models import OpticRef, SellerProfile

logger = logging.getLogger(__name__)

TODOS = "all"

# ============================================================================
# TIPOS
# ============================================================================

@dataclass(frozen=True)
class FilterSelection:
    state: str = TODOS
    city: str = TODOS
    optic: str = TODOS   # id da ótica
    seller: str = TODOS  # id do vendedor

    @classmethod
    def from_params(cls, state=None, city=None, optic=None, seller=None) -> "FilterSelection":
        return cls(
            state=state or TODOS,
            city=city or TODOS,
            optic=optic or TODOS,
            seller=seller or TODOS,
        )

    def to_dict(self) -> dict:
        return {"state": self.state, "city": self.city, "optic": self.optic, "seller": self.seller}


@dataclass(frozen=True)
class ResolvedFilters:
    selection: FilterSelection
    seller_ids: FrozenSet[str]
    states: Tuple[str, ...]
    cities: Tuple[str, ...]
    optics: Tuple[OpticRef, ...]
    sellers: Tuple[SellerProfile, ...]

    def to_dict(self) -> dict:
        return {
            "selecao": self.selection.to_dict(),
            "sellerIds": sorted(self.seller_ids),
            "opcoes": {
                "estados": list(self.states),
                "cidades": list(self.cities),
                "oticas": [
                    {"id": o.id, "nome": o.trade_name or o.corporate_name, "cidade": o.city, "estado": o.state}
                    for o in self.optics
                ],
                "vendedores": [
                    {"id": s.id, "nome": s.full_name, "otica": s.optic_name}
                    for s in self.sellers
                ],
            },
        }


# ============================================================================
# RESOLUÇÃO
# ============================================================================

def _norm(valor) -> str:
    return (valor or "").strip().casefold()


def _distintos(valores: Iterable[str]) -> Tuple[str, ...]:
    """Valores únicos (comparação normalizada), ordenados, mantendo a grafia original."""
    vistos: Dict[str, str] = {}
    for valor in valores:
        chave = _norm(valor)
        if chave and chave not in vistos:
            vistos[chave] = valor.strip()
    return tuple(vistos[k] for k in sorted(vistos))


def _nomes_otica(optic: OpticRef) -> List[str]:
    return [n for n in (_norm(optic.trade_name), _norm(optic.corporate_name)) if n]


def resolve_filters(
    sellers: Iterable[SellerProfile],
    optics: Iterable[OpticRef],
    selection: FilterSelection
) -> ResolvedFilters:
    """
    Aplica a cascata de filtros sobre os cadastros completos.

    Args:
        sellers: Todos os vendedores (cada um com optic_name)
        optics: Todas as óticas (cada uma com cidade/estado)
        selection: Seleção atual; cada campo é um valor ou "all"

    Returns:
        ResolvedFilters com a seleção normalizada, os vendedores
        resultantes e as opções válidas de cada nível
    """
    sellers = sorted(sellers, key=lambda s: (_norm(s.full_name), s.id))
    optics = sorted(optics, key=lambda o: (_norm(o.trade_name or o.corporate_name), o.id))
    original = selection

    states = _distintos(o.state for o in optics if o.state)
    if selection.state != TODOS and _norm(selection.state) not in {_norm(s) for s in states}:
        selection = replace(selection, state=TODOS)

    optics_estado = [
        o for o in optics
        if selection.state == TODOS or _norm(o.state) == _norm(selection.state)
    ]

    cities = _distintos(o.city for o in optics_estado if o.city)
    if selection.city != TODOS and _norm(selection.city) not in {_norm(c) for c in cities}:
        selection = replace(selection, city=TODOS)

    optics_cidade = [
        o for o in optics_estado
        if selection.city == TODOS or _norm(o.city) == _norm(selection.city)
    ]

    if selection.optic != TODOS and selection.optic not in {o.id for o in optics_cidade}:
        selection = replace(selection, optic=TODOS)

    filtro_geografico = selection.state != TODOS or selection.city != TODOS or selection.optic != TODOS
    if filtro_geografico:
        candidatas = [o for o in optics_cidade if selection.optic == TODOS or o.id == selection.optic]
        nomes = {n for o in candidatas for n in _nomes_otica(o)}
        sellers_validos = [s for s in sellers if _norm(s.optic_name) in nomes]
    else:
        sellers_validos = list(sellers)

    if selection.seller != TODOS and selection.seller not in {s.id for s in sellers_validos}:
        selection = replace(selection, seller=TODOS)

    if selection.seller != TODOS:
        seller_ids = frozenset({selection.seller})
    else:
        seller_ids = frozenset(s.id for s in sellers_validos)

    if selection != original:
        logger.info(f"🔄 Filtros inconsistentes redefinidos: {original.to_dict()} -> {selection.to_dict()}")

    return ResolvedFilters(
        selection=selection,
        seller_ids=seller_ids,
        states=states,
        cities=cities,
        optics=tuple(optics_cidade),
        sellers=tuple(sellers_validos),
    )


def narrow(
    sellers: Iterable[SellerProfile],
    optics: Iterable[OpticRef],
    selection: FilterSelection,
    **alteracoes: str
) -> ResolvedFilters:
    """Altera um ou mais níveis da seleção e resolve a cascata novamente."""
    return resolve_filters(sellers, optics, replace(selection, **alteracoes))
