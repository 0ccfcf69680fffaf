"""
Sessão autenticada.

A identidade e o papel do usuário são resolvidos uma única vez por
requisição e repassados explicitamente para as operações.
"""

from dataclasses import dataclass
from typing import Optional
import logging

logger = logging.getLogger(__name__)

ADMIN_ROLE = "admin"
REPRESENTATIVE_ROLE = "representative"


@dataclass(frozen=True)
class Sessao:
    user_id: str
    role: str
    full_name: Optional[str] = None
    status: Optional[str] = None
    brand_id: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE

    def pode_ver_vendedor(self, seller_id: str) -> bool:
        return self.is_admin or self.user_id == seller_id


def resolver_sessao(source, access_token: str) -> Optional[Sessao]:
    """
    Valida o token na Auth e carrega o perfil do usuário.

    Returns:
        Sessao, ou None quando o token é inválido ou não há perfil
    """
    user_id = source.get_user_id(access_token)
    if not user_id:
        return None

    profile = source.get_profile(user_id)
    if profile is None:
        logger.warning(f"⚠️ Usuário {user_id} autenticado sem perfil")
        return None

    return Sessao(
        user_id=user_id,
        role=profile.role,
        full_name=profile.full_name,
        status=profile.status,
        brand_id=profile.brand_id,
    )
