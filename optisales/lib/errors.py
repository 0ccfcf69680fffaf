"""
Hierarquia de erros do OptiSales.

O ledger é puro e não falha; estes erros vêm das suas dependências
(plataforma de dados) e da validação de pagamentos.
"""

from typing import Optional


class OptiSalesError(Exception):
    """Base de todos os erros da aplicação."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class SourceUnavailable(OptiSalesError):
    """Consulta à plataforma falhou (rede, autenticação ou storage)."""


class ConstraintViolation(OptiSalesError):
    """Operação rejeitada por restrição de integridade no banco."""

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.code = code


class ValidationError(OptiSalesError):
    """Dados inválidos, rejeitados antes de qualquer escrita."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field
