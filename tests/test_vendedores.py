"""Tests de aprovação e exclusão de representantes."""

import pytest

from conftest import FakeEventSource
from optisales.lib.errors import ConstraintViolation, ValidationError
from optisales.lib.models import SellerProfile
from optisales.scripts.vendedores import (
    MSG_VENDEDOR_COM_HISTORICO,
    atualizar_status_vendedor,
    excluir_vendedor,
)


@pytest.fixture
def source() -> FakeEventSource:
    return FakeEventSource(sellers=[SellerProfile(id="s1", full_name="Ana")])


class TestStatus:
    def test_approve(self, source) -> None:
        assert atualizar_status_vendedor(source, "s1", "approved").status == "approved"

    def test_unknown_seller(self, source) -> None:
        assert atualizar_status_vendedor(source, "s9", "approved") is None

    def test_invalid_status(self, source) -> None:
        with pytest.raises(ValidationError):
            atualizar_status_vendedor(source, "s1", "banido")


class TestExcluir:
    def test_delete_without_history(self, source) -> None:
        assert excluir_vendedor(source, "s1") is True
        assert source.sellers == []

    def test_history_blocks_delete_with_friendly_message(self, source) -> None:
        source.constraint_on_delete = True

        with pytest.raises(ConstraintViolation) as exc:
            excluir_vendedor(source, "s1")
        assert exc.value.message == MSG_VENDEDOR_COM_HISTORICO
        assert exc.value.code == "23503"
