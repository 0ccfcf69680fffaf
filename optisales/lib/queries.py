# ============================================================================
# TABELAS, BUCKETS E SELECTS DO SUPABASE (PostgREST)
# ============================================================================

SALES_TABLE = "sales"
PAYMENTS_TABLE = "commission_payments"
PROFILES_TABLE = "profiles"
OPTICS_TABLE = "optics"
BRANDS_TABLE = "brands"

INVOICES_BUCKET = "notas-fiscais"
RECEIPTS_BUCKET = "receipts"

# Código Postgres para violação de chave estrangeira
FOREIGN_KEY_VIOLATION = "23503"

# ============================================================================
# VENDAS
# ============================================================================

# A comissão vem do valor ATUAL da marca (join com brands)
SELECT_VENDAS_COMISSAO = """
    id,
    seller_id,
    brand_id,
    status,
    created_at,
    brands(commission_value)
"""

SELECT_VENDAS_COMPLETAS = """
    id,
    seller_id,
    brand_id,
    status,
    created_at,
    invoice_photo_url,
    reviewed_at,
    reviewer_id,
    profiles!sales_seller_id_fkey(full_name, optic_name),
    brands(name, commission_value)
"""

# ============================================================================
# PAGAMENTOS
# ============================================================================

SELECT_PAGAMENTOS = """
    id,
    seller_id,
    amount,
    period_reference,
    receipt_url,
    created_at
"""

# ============================================================================
# CADASTROS
# ============================================================================

SELECT_VENDEDORES = """
    id,
    full_name,
    email,
    cpf,
    cnpj,
    optic_name,
    brand_id,
    role,
    status,
    chave_pix
"""

SELECT_OTICAS = """
    id,
    corporate_name,
    trade_name,
    cnpj,
    city,
    state,
    active
"""

SELECT_MARCAS = """
    id,
    name,
    commission_value,
    promo_type,
    promo_value,
    promo_start_date,
    promo_end_date
"""
