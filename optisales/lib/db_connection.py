"""
Módulo de conexão com a plataforma Supabase.

Fornece função global get_client() para obter o cliente compartilhado
(PostgREST, Storage e Auth).
"""

import os
from typing import Optional
import logging

from dotenv import load_dotenv
from supabase import Client, create_client

load_dotenv()
logger = logging.getLogger(__name__)

# Cliente único por processo
supabase_client: Optional[Client] = None


def init_client() -> Client:
    """Inicializa o cliente Supabase se ainda não foi inicializado."""
    global supabase_client

    if supabase_client is None:
        url = os.getenv("SUPABASE_URL")
        key = os.getenv("SUPABASE_SERVICE_KEY")
        if not url or not key:
            raise RuntimeError(
                "Credenciais do Supabase não configuradas. "
                "Defina SUPABASE_URL e SUPABASE_SERVICE_KEY."
            )
        try:
            supabase_client = create_client(url, key)
            logger.info("✅ Cliente Supabase inicializado")
        except Exception as e:
            logger.error(f"❌ Erro ao inicializar cliente Supabase: {e}")
            raise

    return supabase_client


def get_client() -> Client:
    """
    Obtém o cliente Supabase compartilhado.

    Returns:
        Cliente supabase-py

    Raises:
        RuntimeError: Se as credenciais não estiverem configuradas
    """
    if supabase_client is None:
        return init_client()
    return supabase_client


def close_client():
    """Descarta o cliente compartilhado."""
    global supabase_client

    if supabase_client is not None:
        supabase_client = None
        logger.info("✅ Cliente Supabase descartado")
