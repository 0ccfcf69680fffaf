from fastapi import FastAPI, HTTPException, Depends, Request, Response, UploadFile, File, Form, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from upstash_redis import Redis
from .lib import errors
from .lib.db_connection import get_client, close_client
from .lib.event_source import SupabaseEventSource
from .lib.periodo import parse_date_range
from .lib.queries import INVOICES_BUCKET
from .lib.sessao import Sessao, resolver_sessao, REPRESENTATIVE_ROLE
from .scripts.filtros import FilterSelection, resolve_filters
from .scripts.ledger import scoped_balance, lifetime_ledger
from .scripts.pagamentos import (
    PedidoPagamento,
    SellerLocks,
    registrar_pagamento,
    enviar_comprovante,
)
from .scripts.vendas import (
    registrar_venda,
    auditar_venda,
    fetch_ranking_vendedores,
    fetch_resumo_vendas,
)
from .scripts.vendedores import atualizar_status_vendedor, excluir_vendedor
from .scripts.cadastros import atualizar_marca, cadastrar_otica, atualizar_otica, excluir_otica
import os
import json
from decimal import Decimal
from dotenv import load_dotenv
import logging
from datetime import datetime, timezone
from contextlib import asynccontextmanager
import asyncio
import time

from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Any, Callable, Literal, Tuple, Union
from pydantic import BaseModel, Field

# ============================================================================
# CONFIGURAÇÕES E CONSTANTES
# ============================================================================

load_dotenv()

# Logging estruturado
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

VERSION = "1.0.0"

# Configurações de cache
class CacheConfig:
    RELATORIO = 60 * 10          # 10 minutos
    FILTROS = 60 * 30            # 30 minutos
    RANKING = 60 * 5             # 5 minutos
    RESUMO = 60 * 10             # 10 minutos
    MARCAS = 60 * 60             # 1 hora
    STALE = 60 * 60 * 24 * 7     # 7 dias (cópia de segurança)

# Padrões invalidados após cada escrita
COMISSOES_PATTERNS = ['comissoes:*']
VENDAS_PATTERNS = ['vendas:*', 'comissoes:*']
CADASTROS_PATTERNS = ['marcas:*', 'comissoes:*']
ALL_PATTERNS = ['comissoes:*', 'vendas:*', 'marcas:*', 'stale:*']

# Thread pool otimizado
MAX_WORKERS = min(32, (os.cpu_count() or 1) + 4)
executor = ThreadPoolExecutor(max_workers=MAX_WORKERS, thread_name_prefix="api_worker")

STALE_HEADER = "X-Dados-Desatualizados"

# ============================================================================
# MODELOS PYDANTIC
# ============================================================================

class PagamentoRequest(BaseModel):
    """Pagamento de comissão a registrar"""
    seller_id: str = Field(..., min_length=1, description="ID do vendedor")
    amount: Optional[Decimal] = Field(None, description="Valor pago em reais")
    period_reference: Optional[str] = Field(None, description="Período de referência (ex: Janeiro/2026)")
    receipt_url: Optional[str] = Field(None, description="URL do comprovante enviado")


class AuditoriaRequest(BaseModel):
    status: Literal['approved', 'rejected', 'needs_correction']


class VendaRequest(BaseModel):
    invoice_path: str = Field(..., min_length=1, description="Caminho da foto no bucket notas-fiscais")


class StatusVendedorRequest(BaseModel):
    status: Literal['pending', 'approved', 'rejected']


class MarcaUpdateRequest(BaseModel):
    """Campos editáveis da marca; só os enviados são alterados"""
    commission_value: Union[Decimal, str, None] = None
    promo_type: Optional[str] = None
    promo_value: Union[Decimal, str, None] = None
    promo_start_date: Union[datetime, str, None] = None
    promo_end_date: Union[datetime, str, None] = None


class OticaRequest(BaseModel):
    corporate_name: str = Field(..., description="Razão social")
    trade_name: Optional[str] = Field(None, description="Nome fantasia")
    cnpj: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = Field(None, description="UF")


class OticaUpdateRequest(BaseModel):
    corporate_name: Optional[str] = None
    trade_name: Optional[str] = None
    cnpj: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None


class CacheResponse(BaseModel):
    status: str
    message: str
    keys_deleted: int

# ============================================================================
# AUTENTICAÇÃO
# ============================================================================

security = HTTPBearer(auto_error=False)


def get_event_source() -> SupabaseEventSource:
    """Fonte de eventos sobre o cliente Supabase compartilhado"""
    return SupabaseEventSource(get_client())


def get_sessao(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    source: SupabaseEventSource = Depends(get_event_source)
) -> Sessao:
    """Resolve usuário e papel uma vez por requisição"""
    if credentials is None:
        raise HTTPException(
            status_code=401,
            detail="Token ausente",
            headers={"WWW-Authenticate": "Bearer"}
        )
    try:
        sessao = resolver_sessao(source, credentials.credentials)
    except errors.SourceUnavailable as e:
        raise HTTPException(status_code=503, detail=e.message)

    if sessao is None:
        raise HTTPException(
            status_code=401,
            detail="Credenciais inválidas",
            headers={"WWW-Authenticate": "Bearer"}
        )
    return sessao


def require_admin(sessao: Sessao = Depends(get_sessao)) -> Sessao:
    if not sessao.is_admin:
        raise HTTPException(status_code=403, detail="Acesso restrito a administradores")
    return sessao


def require_representative(sessao: Sessao = Depends(get_sessao)) -> Sessao:
    if sessao.role != REPRESENTATIVE_ROLE:
        raise HTTPException(status_code=403, detail="Acesso restrito a representantes")
    return sessao

# ============================================================================
# TRADUÇÃO DE ERROS
# ============================================================================

def http_error(e: Exception, rota: str) -> HTTPException:
    """Converte erros de domínio em respostas HTTP"""
    if isinstance(e, HTTPException):
        return e
    if isinstance(e, errors.ValidationError):
        return HTTPException(status_code=422, detail={"message": e.message, "field": e.field})
    if isinstance(e, errors.ConstraintViolation):
        return HTTPException(status_code=409, detail=e.message)
    if isinstance(e, errors.SourceUnavailable):
        logger.error(f"Fonte indisponível em {rota}: {e.message}")
        return HTTPException(status_code=503, detail=e.message)
    logger.error(f"Erro em {rota}: {e}")
    return HTTPException(status_code=500, detail=str(e))

# ============================================================================
# GERENCIAMENTO DE CACHE E LOCKS
# ============================================================================

def json_encoder(obj):
    """Encoder para tipos não serializáveis (dinheiro vira string)"""
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, datetime):
        return obj.isoformat()
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


class CacheManager:
    """Gerenciador centralizado de cache com cópia de segurança"""

    def __init__(self, redis_client: Redis):
        self.redis = redis_client

    def get(self, key: str) -> Optional[Any]:
        """Busca valor do cache com tratamento de erros"""
        try:
            cached = self.redis.get(key)
            if cached is not None:
                return json.loads(cached) if isinstance(cached, str) else cached
        except Exception as e:
            logger.warning(f"⚠️ Erro ao buscar cache {key}: {e}")
        return None

    def set(self, key: str, value: Any, ttl: int) -> bool:
        """Salva valor no cache com tratamento de erros"""
        try:
            cache_data = json.dumps(value, ensure_ascii=False, default=json_encoder)
            self.redis.set(key, cache_data, ex=ttl)
            return True
        except Exception as e:
            logger.warning(f"⚠️ Erro ao salvar cache {key}: {e}")
            return False

    def delete_pattern(self, pattern: str) -> int:
        """Deleta chaves que correspondem ao padrão"""
        try:
            keys = self.redis.keys(pattern)
            deleted = 0
            for key in keys:
                self.redis.delete(key)
                deleted += 1
            return deleted
        except Exception as e:
            logger.error(f"❌ Erro ao deletar cache {pattern}: {e}")
            return 0

    def invalidate(self, patterns: List[str]) -> int:
        total = 0
        for pattern in patterns:
            deleted = self.delete_pattern(pattern)
            total += deleted
            logger.info(f"🗑️ Deletadas {deleted} chaves: {pattern}")
        return total

    async def get_or_compute(
        self,
        cache_key: str,
        compute_func: Callable,
        ttl: int,
        *args,
        **kwargs
    ) -> Tuple[Any, bool]:
        """
        Busca no cache ou calcula o valor.

        Se a fonte estiver indisponível e existir uma cópia anterior
        (stale:{cache_key}), devolve essa cópia em vez de falhar.

        Returns:
            (valor, desatualizado)
        """
        cached = self.get(cache_key)
        if cached is not None:
            logger.info(f"✅ Cache hit: {cache_key}")
            return cached, False

        logger.info(f"❌ Cache miss: {cache_key}")

        try:
            result = await self._execute_compute(compute_func, *args, **kwargs)
        except errors.SourceUnavailable:
            stale = self.get(f"stale:{cache_key}")
            if stale is None:
                raise
            logger.warning(f"⚠️ Fonte indisponível, servindo cópia anterior: {cache_key}")
            return stale, True

        result = json.loads(json.dumps(result, ensure_ascii=False, default=json_encoder))
        self.set(cache_key, result, ttl)
        self.set(f"stale:{cache_key}", result, CacheConfig.STALE)
        logger.info(f"💾 Cache salvo: {cache_key} (TTL: {ttl}s)")
        return result, False

    async def _execute_compute(self, func: Callable, *args, **kwargs) -> Any:
        """Executa função de forma assíncrona se necessário"""
        if asyncio.iscoroutinefunction(func):
            return await func(*args, **kwargs)
        return await run_blocking(lambda: func(*args, **kwargs))


async def run_blocking(func: Callable) -> Any:
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(executor, func)

# ============================================================================
# INICIALIZAÇÃO DA APLICAÇÃO
# ============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Gerencia lifecycle da aplicação"""
    try:
        logger.info("🚀 Iniciando aplicação...")

        # Validar variáveis de ambiente
        required_vars = [
            "SUPABASE_URL",
            "SUPABASE_SERVICE_KEY",
            "UPSTASH_REDIS_REST_URL",
            "UPSTASH_REDIS_REST_TOKEN",
        ]
        missing = [var for var in required_vars if not os.getenv(var)]

        if missing:
            raise RuntimeError(f"Variáveis obrigatórias ausentes: {missing}")

        # Testar Redis
        app.state.redis.ping()
        logger.info("✅ Redis conectado")

        get_client()

        app.state.cache = CacheManager(app.state.redis)
        app.state.locks = SellerLocks(app.state.redis)
        logger.info("✅ Cache manager e locks de pagamento inicializados")

        logger.info(f"✅ Thread pool: {MAX_WORKERS} workers")
        logger.info("✅ Aplicação pronta!")

        yield

    except Exception as e:
        logger.error(f"❌ Erro na inicialização: {e}")
        raise
    finally:
        logger.info("🔴 Encerrando aplicação...")
        close_client()
        executor.shutdown(wait=True)
        logger.info("✅ Aplicação encerrada")

# Criar app FastAPI
app = FastAPI(
    title="OptiSales API",
    description="API de comissões, auditoria de notas e pagamentos de representantes",
    version=VERSION,
    lifespan=lifespan
)

# Inicializar Redis antes do lifespan
try:
    redis = Redis.from_env()
    app.state.redis = redis
    logger.info("✅ Redis configurado")
except Exception as e:
    logger.error(f"❌ Erro ao configurar Redis: {e}")
    raise

# ============================================================================
# MIDDLEWARES
# ============================================================================

app.add_middleware(GZipMiddleware, minimum_size=1000)

app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("CORS_ORIGINS", "*").split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.middleware("http")
async def add_process_time_header(request: Request, call_next):
    """Adiciona tempo de processamento nos headers"""
    start_time = time.time()
    response = await call_next(request)
    process_time = time.time() - start_time
    response.headers["X-Process-Time"] = f"{process_time:.3f}s"
    return response


def _marcar_desatualizado(response: Response, desatualizado: bool):
    if desatualizado:
        response.headers[STALE_HEADER] = "true"

# ============================================================================
# ENDPOINTS
# ============================================================================

@app.get("/")
async def root():
    """Endpoint raiz"""
    return {
        "message": "OptiSales API",
        "version": VERSION,
        "status": "online",
        "docs": "/docs"
    }

@app.get("/health")
async def health_check(request: Request):
    """Health check detalhado"""
    try:
        request.app.state.redis.ping()

        return {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "environment": os.getenv("ENVIRONMENT", "production"),
            "redis": "connected",
            "workers": MAX_WORKERS,
            "version": VERSION
        }
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        raise HTTPException(status_code=503, detail="Service unavailable")

@app.get("/me")
async def get_me(sessao: Sessao = Depends(get_sessao)):
    """Sessão resolvida para o token enviado"""
    return {
        "userId": sessao.user_id,
        "role": sessao.role,
        "fullName": sessao.full_name,
        "status": sessao.status,
        "brandId": sessao.brand_id,
    }

# ============================================================================
# ENDPOINTS DE COMISSÕES
# ============================================================================

@app.get("/filtros", dependencies=[Depends(require_admin)])
async def get_filtros(
    request: Request,
    response: Response,
    state: Optional[str] = None,
    city: Optional[str] = None,
    optic: Optional[str] = None,
    seller: Optional[str] = None,
    source: SupabaseEventSource = Depends(get_event_source)
):
    """
    Resolve a cascata estado -> cidade -> ótica -> vendedor.

    Seleções que deixaram de ser coerentes voltam para "all".
    """
    selection = FilterSelection.from_params(state, city, optic, seller)
    cache_key = f"comissoes:filtros:{selection.state}:{selection.city}:{selection.optic}:{selection.seller}"
    cache: CacheManager = request.app.state.cache

    try:
        def compute_filtros():
            return resolve_filters(source.select_sellers(), source.select_optics(), selection).to_dict()

        result, desatualizado = await cache.get_or_compute(cache_key, compute_filtros, CacheConfig.FILTROS)
        _marcar_desatualizado(response, desatualizado)
        return result
    except Exception as e:
        raise http_error(e, "/filtros")

@app.get("/comissoes/relatorio", dependencies=[Depends(require_admin)])
async def get_relatorio_comissoes(
    request: Request,
    response: Response,
    state: Optional[str] = None,
    city: Optional[str] = None,
    optic: Optional[str] = None,
    seller: Optional[str] = None,
    data_inicio: Optional[str] = None,
    data_fim: Optional[str] = None,
    source: SupabaseEventSource = Depends(get_event_source)
):
    """
    Relatório de comissões (saldo com escopo) para os vendedores filtrados.

    - **state / city / optic / seller**: filtros hierárquicos ("all" ou vazio = todos)
    - **data_inicio / data_fim**: período inclusivo (YYYY-MM-DD)

    **Response:**
    ```json
    {
        "filtros": {"selecao": {...}, "sellerIds": [...], "opcoes": {...}},
        "periodo": {"inicio": "2026-01-01", "fim": "2026-01-31"},
        "ganho": "10.00",
        "pago": "5.00",
        "saldo": "5.00",
        "porVendedor": [...],
        "extrato": [...]
    }
    ```
    """
    selection = FilterSelection.from_params(state, city, optic, seller)
    cache_key = (
        f"comissoes:relatorio:{selection.state}:{selection.city}:{selection.optic}:"
        f"{selection.seller}:{data_inicio or 'all'}:{data_fim or 'all'}"
    )
    cache: CacheManager = request.app.state.cache

    try:
        date_range = parse_date_range(data_inicio, data_fim)

        def compute_relatorio():
            resolved = resolve_filters(source.select_sellers(), source.select_optics(), selection)
            brands = {b.id: b for b in source.select_brands()}
            ledger = scoped_balance(source, resolved.seller_ids, date_range, brands)
            return {
                "filtros": resolved.to_dict(),
                "periodo": {"inicio": data_inicio, "fim": data_fim},
                **ledger.to_dict(),
            }

        result, desatualizado = await cache.get_or_compute(cache_key, compute_relatorio, CacheConfig.RELATORIO)
        _marcar_desatualizado(response, desatualizado)
        return result
    except Exception as e:
        raise http_error(e, "/comissoes/relatorio")

@app.get("/comissoes/saldo/{seller_id}")
async def get_saldo_vitalicio(
    seller_id: str,
    sessao: Sessao = Depends(get_sessao),
    source: SupabaseEventSource = Depends(get_event_source)
):
    """
    Saldo vitalício do vendedor (todo o histórico, sem filtro de período).

    É o valor usado para liberar novos pagamentos; nunca vem do cache.
    """
    if not sessao.pode_ver_vendedor(seller_id):
        raise HTTPException(status_code=403, detail="Acesso negado a este vendedor")
    try:
        ledger = await run_blocking(lambda: lifetime_ledger(source, seller_id))
        return {"sellerId": seller_id, **ledger.to_dict(incluir_extrato=False)}
    except Exception as e:
        raise http_error(e, "/comissoes/saldo")

@app.get("/comissoes/meu-extrato")
async def get_meu_extrato(
    data_inicio: Optional[str] = None,
    data_fim: Optional[str] = None,
    sessao: Sessao = Depends(require_representative),
    source: SupabaseEventSource = Depends(get_event_source)
):
    """Extrato do próprio representante no período, com o saldo disponível total"""
    try:
        date_range = parse_date_range(data_inicio, data_fim)
        escopo, vitalicio = await asyncio.gather(
            run_blocking(lambda: scoped_balance(source, {sessao.user_id}, date_range)),
            run_blocking(lambda: lifetime_ledger(source, sessao.user_id)),
        )
        return {
            "sellerId": sessao.user_id,
            "periodo": {"inicio": data_inicio, "fim": data_fim},
            **escopo.to_dict(),
            "saldoDisponivel": str(vitalicio.balance),
        }
    except Exception as e:
        raise http_error(e, "/comissoes/meu-extrato")

@app.post("/comissoes/pagamentos", status_code=201)
async def post_pagamento(
    request: Request,
    pagamento: PagamentoRequest,
    sessao: Sessao = Depends(require_admin),
    source: SupabaseEventSource = Depends(get_event_source)
):
    """
    Registra um pagamento de comissão.

    O saldo vitalício é recalculado sob lock do vendedor imediatamente
    antes da gravação; valores acima do saldo são recusados (422).

    **Request:**
    ```json
    {
        "seller_id": "b1f0...",
        "amount": "100.00",
        "period_reference": "Janeiro/2026",
        "receipt_url": "https://.../receipts/b1f0-1767225600000.pdf"
    }
    ```
    """
    locks: SellerLocks = request.app.state.locks
    cache: CacheManager = request.app.state.cache
    pedido = PedidoPagamento(
        seller_id=pagamento.seller_id,
        amount=pagamento.amount,
        period_reference=pagamento.period_reference,
        receipt_url=pagamento.receipt_url,
    )

    try:
        payment = await run_blocking(lambda: registrar_pagamento(source, pedido, locks))
    except Exception as e:
        raise http_error(e, "/comissoes/pagamentos")

    cache.invalidate(COMISSOES_PATTERNS)
    logger.info(f"💰 Pagamento registrado por {sessao.user_id}")
    return payment.model_dump(mode="json")

@app.post("/comissoes/comprovantes", status_code=201, dependencies=[Depends(require_admin)])
async def post_comprovante(
    seller_id: str = Form(...),
    file: UploadFile = File(...),
    source: SupabaseEventSource = Depends(get_event_source)
):
    """Envia o comprovante para o storage e devolve a URL pública"""
    try:
        content = await file.read()
        url = await run_blocking(
            lambda: enviar_comprovante(source, seller_id, file.filename or "", content, file.content_type)
        )
        return {"receipt_url": url}
    except Exception as e:
        raise http_error(e, "/comissoes/comprovantes")

# ============================================================================
# ENDPOINTS DE VENDAS
# ============================================================================

@app.get("/vendas/ranking", dependencies=[Depends(get_sessao)])
async def get_ranking(
    request: Request,
    response: Response,
    brand_id: Optional[str] = None,
    period: Literal['all', 'current_month', 'last_30_days'] = 'all',
    limite: Optional[int] = Query(None, ge=1),
    source: SupabaseEventSource = Depends(get_event_source)
):
    """Ranking de vendedores por quantidade de vendas aprovadas"""
    cache_key = f"vendas:ranking:{brand_id or 'all'}:{period}:{limite if limite is not None else 'all'}"
    cache: CacheManager = request.app.state.cache

    try:
        result, desatualizado = await cache.get_or_compute(
            cache_key,
            lambda: fetch_ranking_vendedores(source, brand_id, period, limite),
            CacheConfig.RANKING
        )
        _marcar_desatualizado(response, desatualizado)
        return result
    except Exception as e:
        raise http_error(e, "/vendas/ranking")

@app.get("/vendas/resumo", dependencies=[Depends(require_admin)])
async def get_resumo_vendas(
    request: Request,
    response: Response,
    data_inicio: Optional[str] = None,
    data_fim: Optional[str] = None,
    source: SupabaseEventSource = Depends(get_event_source)
):
    """Totais por status, taxa de aprovação e mix de marcas"""
    cache_key = f"vendas:resumo:{data_inicio or 'all'}:{data_fim or 'all'}"
    cache: CacheManager = request.app.state.cache

    try:
        date_range = parse_date_range(data_inicio, data_fim)
        result, desatualizado = await cache.get_or_compute(
            cache_key,
            lambda: fetch_resumo_vendas(source, date_range),
            CacheConfig.RESUMO
        )
        _marcar_desatualizado(response, desatualizado)
        return result
    except Exception as e:
        raise http_error(e, "/vendas/resumo")

@app.get("/vendas/pendentes", dependencies=[Depends(require_admin)])
async def get_vendas_pendentes(source: SupabaseEventSource = Depends(get_event_source)):
    """Fila de auditoria: notas aguardando análise, mais antigas primeiro"""
    try:
        def compute_pendentes():
            pendentes = []
            for sale in source.select_sales(status='pending', mais_recentes_primeiro=False):
                item = sale.model_dump(mode="json")
                if sale.invoice_photo_url:
                    item["invoice_public_url"] = source.public_url(INVOICES_BUCKET, sale.invoice_photo_url)
                pendentes.append(item)
            return pendentes

        return await run_blocking(compute_pendentes)
    except Exception as e:
        raise http_error(e, "/vendas/pendentes")

@app.post("/vendas", status_code=201)
async def post_venda(
    request: Request,
    venda: VendaRequest,
    sessao: Sessao = Depends(require_representative),
    source: SupabaseEventSource = Depends(get_event_source)
):
    """Registra a nota fiscal já enviada ao bucket notas-fiscais"""
    cache: CacheManager = request.app.state.cache

    try:
        def compute_registro():
            profile = source.get_profile(sessao.user_id)
            if profile is None:
                raise HTTPException(status_code=404, detail="Perfil não encontrado.")
            return registrar_venda(source, profile, venda.invoice_path)

        sale = await run_blocking(compute_registro)
    except Exception as e:
        raise http_error(e, "/vendas")

    cache.invalidate(VENDAS_PATTERNS)
    return sale.model_dump(mode="json")

@app.post("/vendas/{sale_id}/auditoria")
async def post_auditoria(
    request: Request,
    sale_id: str,
    auditoria: AuditoriaRequest,
    sessao: Sessao = Depends(require_admin),
    source: SupabaseEventSource = Depends(get_event_source)
):
    """Aprova, recusa ou pede correção de uma nota em análise"""
    cache: CacheManager = request.app.state.cache

    try:
        sale = await run_blocking(lambda: auditar_venda(source, sale_id, auditoria.status, sessao.user_id))
    except Exception as e:
        raise http_error(e, "/vendas/auditoria")

    cache.invalidate(VENDAS_PATTERNS)
    return sale.model_dump(mode="json")

# ============================================================================
# ENDPOINTS DE VENDEDORES E MARCAS
# ============================================================================

@app.patch("/vendedores/{seller_id}/status", dependencies=[Depends(require_admin)])
async def patch_status_vendedor(
    request: Request,
    seller_id: str,
    body: StatusVendedorRequest,
    source: SupabaseEventSource = Depends(get_event_source)
):
    """Aprova ou recusa o cadastro de um representante"""
    try:
        seller = await run_blocking(lambda: atualizar_status_vendedor(source, seller_id, body.status))
    except Exception as e:
        raise http_error(e, "/vendedores/status")

    if seller is None:
        raise HTTPException(status_code=404, detail="Vendedor não encontrado")
    request.app.state.cache.invalidate(COMISSOES_PATTERNS)
    return seller.model_dump(mode="json")

@app.delete("/vendedores/{seller_id}", dependencies=[Depends(require_admin)])
async def delete_vendedor(
    request: Request,
    seller_id: str,
    source: SupabaseEventSource = Depends(get_event_source)
):
    """Exclui um representante sem vendas nem pagamentos vinculados"""
    try:
        excluido = await run_blocking(lambda: excluir_vendedor(source, seller_id))
    except Exception as e:
        raise http_error(e, "/vendedores")

    if not excluido:
        raise HTTPException(status_code=404, detail="Vendedor não encontrado")
    request.app.state.cache.invalidate(COMISSOES_PATTERNS)
    return {"status": "success", "message": "Vendedor excluído com sucesso!"}

@app.get("/marcas", dependencies=[Depends(get_sessao)])
async def get_marcas(
    request: Request,
    response: Response,
    source: SupabaseEventSource = Depends(get_event_source)
):
    """
    Lista marcas com o valor de comissão atual.

    promocaoVigente indica uma promoção cadastrada no momento; ela é
    apenas informativa e não altera o valor de comissão das vendas.
    """
    cache: CacheManager = request.app.state.cache

    try:
        def compute_marcas():
            agora = datetime.now(timezone.utc)
            return [
                {
                    **brand.model_dump(mode="json"),
                    "promocaoVigente": brand.promocao_vigente(agora),
                    "promocaoAplicada": False,
                }
                for brand in source.select_brands()
            ]

        result, desatualizado = await cache.get_or_compute("marcas:lista", compute_marcas, CacheConfig.MARCAS)
        _marcar_desatualizado(response, desatualizado)
        return result
    except Exception as e:
        raise http_error(e, "/marcas")

@app.patch("/marcas/{brand_id}", dependencies=[Depends(require_admin)])
async def patch_marca(
    request: Request,
    brand_id: str,
    body: MarcaUpdateRequest,
    source: SupabaseEventSource = Depends(get_event_source)
):
    """
    Edita valor de comissão e promoção da marca.

    O novo valor passa a valer para todas as vendas aprovadas da marca,
    inclusive as já aprovadas.
    """
    try:
        brand = await run_blocking(
            lambda: atualizar_marca(source, brand_id, body.model_dump(exclude_unset=True))
        )
    except Exception as e:
        raise http_error(e, "/marcas")

    if brand is None:
        raise HTTPException(status_code=404, detail="Marca não encontrada")
    request.app.state.cache.invalidate(CADASTROS_PATTERNS)
    return brand.model_dump(mode="json")

# ============================================================================
# ENDPOINTS DE ÓTICAS
# ============================================================================

@app.get("/oticas", dependencies=[Depends(require_admin)])
async def get_oticas(source: SupabaseEventSource = Depends(get_event_source)):
    """Lista as óticas cadastradas"""
    try:
        optics = await run_blocking(source.select_optics)
        return [o.model_dump(mode="json") for o in optics]
    except Exception as e:
        raise http_error(e, "/oticas")

@app.post("/oticas", status_code=201, dependencies=[Depends(require_admin)])
async def post_otica(
    request: Request,
    body: OticaRequest,
    source: SupabaseEventSource = Depends(get_event_source)
):
    """Cadastra uma ótica (CNPJ gravado só com dígitos)"""
    try:
        optic = await run_blocking(lambda: cadastrar_otica(source, body.model_dump(exclude_unset=True)))
    except Exception as e:
        raise http_error(e, "/oticas")

    request.app.state.cache.invalidate(CADASTROS_PATTERNS)
    return optic.model_dump(mode="json")

@app.patch("/oticas/{optic_id}", dependencies=[Depends(require_admin)])
async def patch_otica(
    request: Request,
    optic_id: str,
    body: OticaUpdateRequest,
    source: SupabaseEventSource = Depends(get_event_source)
):
    try:
        optic = await run_blocking(
            lambda: atualizar_otica(source, optic_id, body.model_dump(exclude_unset=True))
        )
    except Exception as e:
        raise http_error(e, "/oticas")

    if optic is None:
        raise HTTPException(status_code=404, detail="Ótica não encontrada")
    request.app.state.cache.invalidate(CADASTROS_PATTERNS)
    return optic.model_dump(mode="json")

@app.delete("/oticas/{optic_id}", dependencies=[Depends(require_admin)])
async def delete_otica(
    request: Request,
    optic_id: str,
    source: SupabaseEventSource = Depends(get_event_source)
):
    try:
        excluida = await run_blocking(lambda: excluir_otica(source, optic_id))
    except Exception as e:
        raise http_error(e, "/oticas")

    if not excluida:
        raise HTTPException(status_code=404, detail="Ótica não encontrada")
    request.app.state.cache.invalidate(CADASTROS_PATTERNS)
    return {"status": "success", "message": "Ótica excluída com sucesso!"}

# ============================================================================
# ENDPOINTS DE CACHE
# ============================================================================

@app.post("/cache/clear", dependencies=[Depends(require_admin)], response_model=CacheResponse)
async def clear_cache(request: Request):
    """Limpa todo o cache da aplicação, inclusive as cópias de segurança"""
    try:
        cache: CacheManager = request.app.state.cache
        total_deleted = cache.invalidate(ALL_PATTERNS)

        return CacheResponse(
            status="success",
            message="Cache limpo com sucesso",
            keys_deleted=total_deleted
        )
    except Exception as e:
        logger.error(f"Erro ao limpar cache: {e}")
        raise HTTPException(status_code=500, detail=str(e))

@app.get("/cache/stats", dependencies=[Depends(require_admin)])
async def cache_stats(request: Request):
    """Estatísticas do cache"""
    try:
        cache: CacheManager = request.app.state.cache

        patterns = {
            'comissoes': 'comissoes:*',
            'vendas': 'vendas:*',
            'marcas': 'marcas:*',
            'stale': 'stale:*',
        }

        stats = {}
        for name, pattern in patterns.items():
            keys = cache.redis.keys(pattern)
            stats[name] = len(keys)

        return {
            "total_keys": sum(stats.values()),
            "by_type": stats,
            "timestamp": datetime.now(timezone.utc).isoformat()
        }
    except Exception as e:
        logger.error(f"Erro ao obter stats: {e}")
        raise HTTPException(status_code=500, detail=str(e))
