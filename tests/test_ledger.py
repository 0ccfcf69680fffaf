"""Tests do ledger de comissões.

Cobre: totais em centavos, exclusão de vendas não aprovadas, filtros de
período e de vendedores, ordenação do extrato, saldo vitalício vs. saldo
com escopo e sinalização de promoções não aplicadas.
"""

from datetime import date
from decimal import Decimal

import pytest

from conftest import FakeEventSource, make_payment, make_sale, ts
from optisales.lib.errors import SourceUnavailable, ValidationError
from optisales.lib.models import Brand
from optisales.lib.money import formatar_brl, to_centavos
from optisales.lib.periodo import DateRange
from optisales.scripts.ledger import (
    EMPTY_LEDGER,
    compute_ledger,
    lifetime_balance,
    lifetime_ledger,
    scoped_balance,
)


class TestComputeLedger:
    def test_concrete_scenario(self) -> None:
        sales = [
            make_sale("v1", "s1", "10.00", ts(2026, 1, 5, 12)),
            make_sale("v2", "s1", "10.00", ts(2026, 1, 6, 12)),
            make_sale("v3", "s1", "10.00", ts(2026, 1, 7, 12), status="pending"),
        ]
        payments = [make_payment("p1", "s1", "15.00", ts(2026, 1, 8, 12))]

        result = compute_ledger(sales, payments, {"s1"})

        assert result.earned == Decimal("20.00")
        assert result.paid == Decimal("15.00")
        assert result.balance == Decimal("5.00")
        assert len(result.statement) == 3

    def test_empty_seller_set_returns_zero(self) -> None:
        sales = [make_sale("v1", "s1")]
        payments = [make_payment("p1", "s1")]

        result = compute_ledger(sales, payments, set())

        assert result is EMPTY_LEDGER
        assert result.balance == Decimal("0.00")
        assert result.statement == ()

    def test_non_approved_sales_never_count(self) -> None:
        sales = [
            make_sale(f"v{i}", "s1", "7.00", status=status)
            for i, status in enumerate(["pending", "rejected", "needs_correction", "paid"])
        ]

        result = compute_ledger(sales, [], {"s1"})

        assert result.earned_centavos == 0
        assert result.statement == ()

    def test_decimal_sum_is_exact(self) -> None:
        sales = [make_sale(f"v{i}", "s1", 0.10) for i in range(3)]

        result = compute_ledger(sales, [], {"s1"})

        assert result.earned == Decimal("0.30")
        assert result.earned_centavos == 30

    def test_sellers_outside_set_are_ignored(self) -> None:
        sales = [make_sale("v1", "s1", "10.00"), make_sale("v2", "s2", "99.00")]
        payments = [make_payment("p1", "s2", "50.00")]

        result = compute_ledger(sales, payments, {"s1"})

        assert result.earned == Decimal("10.00")
        assert result.paid == Decimal("0.00")
        assert {e.seller_id for e in result.statement} == {"s1"}

    def test_additive_over_disjoint_seller_sets(self) -> None:
        sales = [
            make_sale("v1", "s1", "10.00"),
            make_sale("v2", "s2", "12.50"),
            make_sale("v3", "s3", "3.33"),
        ]
        payments = [make_payment("p1", "s1", "4.00"), make_payment("p2", "s3", "1.11")]

        a = compute_ledger(sales, payments, {"s1"})
        b = compute_ledger(sales, payments, {"s2", "s3"})
        total = compute_ledger(sales, payments, {"s1", "s2", "s3"})

        assert total.balance_centavos == a.balance_centavos + b.balance_centavos
        assert total.earned_centavos == a.earned_centavos + b.earned_centavos

    def test_date_range_is_inclusive_by_day_in_business_timezone(self) -> None:
        # 2026-01-31 23:30 em São Paulo = 2026-02-01 02:30 UTC
        sales = [
            make_sale("v1", "s1", "10.00", ts(2026, 2, 1, 2, 30)),
            make_sale("v2", "s1", "10.00", ts(2026, 2, 1, 3, 30)),
            make_sale("v3", "s1", "10.00", ts(2026, 1, 1, 3, 0)),
        ]
        janeiro = DateRange(date(2026, 1, 1), date(2026, 1, 31))

        result = compute_ledger(sales, [], {"s1"}, janeiro)

        assert sorted(e.record_id for e in result.statement) == ["v1", "v3"]

    def test_statement_is_reverse_chronological_with_tiebreak(self) -> None:
        mesmo_instante = ts(2026, 1, 10, 12)
        sales = [
            make_sale("v1", "s1", "10.00", ts(2026, 1, 1, 12)),
            make_sale("v2", "s1", "10.00", mesmo_instante),
        ]
        payments = [make_payment("p1", "s1", "5.00", mesmo_instante)]

        result = compute_ledger(sales, payments, {"s1"})

        assert [e.record_id for e in result.statement] == ["p1", "v2", "v1"]
        assert [e.timestamp for e in result.statement] == sorted(
            (e.timestamp for e in result.statement), reverse=True
        )

    def test_payments_are_negative_in_statement(self) -> None:
        result = compute_ledger([], [make_payment("p1", "s1", "5.00")], {"s1"})

        entry = result.statement[0]
        assert entry.kind == "pagamento"
        assert entry.amount == Decimal("-5.00")
        assert entry.to_dict()["valorFormatado"] == "-R$ 5,00"

    def test_inputs_are_not_mutated_and_result_is_repeatable(self) -> None:
        sales = [make_sale("v1", "s1", "10.00"), make_sale("v2", "s1", "5.00", status="pending")]
        payments = [make_payment("p1", "s1", "3.00")]
        sales_copy = [s.model_copy() for s in sales]
        payments_copy = [p.model_copy() for p in payments]

        first = compute_ledger(sales, payments, {"s1"})
        second = compute_ledger(sales, payments, {"s1"})

        assert first == second
        assert sales == sales_copy
        assert payments == payments_copy

    def test_per_seller_breakdown(self) -> None:
        sales = [make_sale("v1", "s1", "10.00"), make_sale("v2", "s2", "20.00")]
        payments = [make_payment("p1", "s2", "5.00")]

        result = compute_ledger(sales, payments, {"s1", "s2"})

        por_vendedor = {s.seller_id: s for s in result.por_vendedor}
        assert por_vendedor["s1"].balance_centavos == 1000
        assert por_vendedor["s2"].balance_centavos == 1500

    def test_active_promotion_is_flagged_but_not_applied(self) -> None:
        brand = Brand(
            id="b1",
            name="Marca",
            commission_value=Decimal("10.00"),
            promo_type="fixed",
            promo_value=Decimal("20.00"),
            promo_start_date=ts(2026, 1, 1),
            promo_end_date=ts(2026, 1, 31),
        )
        sales = [
            make_sale("v1", "s1", "10.00", ts(2026, 1, 10)),
            make_sale("v2", "s1", "10.00", ts(2026, 2, 10)),
        ]

        result = compute_ledger(sales, [], {"s1"}, brands={"b1": brand})

        assert result.earned == Decimal("20.00")
        assert result.promocoes_nao_aplicadas == ("v1",)

    def test_to_dict_uses_string_amounts(self) -> None:
        result = compute_ledger([make_sale("v1", "s1", "1234.56")], [], {"s1"})

        dados = result.to_dict()
        assert dados["ganho"] == "1234.56"
        assert dados["ganhoFormatado"] == "R$ 1.234,56"
        assert "extrato" not in result.to_dict(incluir_extrato=False)


class TestBalancesOverSource:
    def test_lifetime_equals_scoped_without_range(self) -> None:
        source = FakeEventSource(
            sales=[make_sale("v1", "s1", "10.00"), make_sale("v2", "s1", "2.50", ts(2025, 6, 1))],
            payments=[make_payment("p1", "s1", "4.00")],
        )

        assert lifetime_ledger(source, "s1") == scoped_balance(source, {"s1"}, None)
        assert lifetime_balance(source, "s1") == Decimal("8.50")

    def test_lifetime_ignores_report_period(self) -> None:
        source = FakeEventSource(
            sales=[make_sale("v1", "s1", "10.00", ts(2025, 6, 1)), make_sale("v2", "s1", "10.00")],
        )
        janeiro = DateRange(date(2026, 1, 1), date(2026, 1, 31))

        assert scoped_balance(source, {"s1"}, janeiro).earned == Decimal("10.00")
        assert lifetime_balance(source, "s1") == Decimal("20.00")

    def test_brand_commission_change_reprices_approved_sales(self) -> None:
        brand = Brand(id="b1", name="Marca", commission_value=Decimal("10.00"))
        source = FakeEventSource(
            sales=[make_sale("v1", "s1", "10.00"), make_sale("v2", "s1", "10.00", ts(2025, 6, 1))],
            payments=[make_payment("p1", "s1", "4.00")],
            brands=[brand],
        )
        assert lifetime_balance(source, "s1") == Decimal("16.00")

        source.brands = [brand.model_copy(update={"commission_value": Decimal("12.50")})]

        assert lifetime_balance(source, "s1") == Decimal("21.00")
        assert scoped_balance(source, {"s1"}).earned == Decimal("25.00")

    def test_empty_set_does_not_query_source(self) -> None:
        source = FakeEventSource(sales=[make_sale("v1", "s1")])

        assert scoped_balance(source, set()) is EMPTY_LEDGER
        assert source.calls == []

    def test_source_failure_propagates(self) -> None:
        source = FakeEventSource(sales=[make_sale("v1", "s1")])
        source.fail = True

        with pytest.raises(SourceUnavailable):
            scoped_balance(source, {"s1"})


class TestMoney:
    def test_float_is_read_as_decimal_text(self) -> None:
        assert to_centavos(0.1) == 10
        assert to_centavos("19.999") == 2000
        assert to_centavos(None) == 0

    def test_brl_formatting(self) -> None:
        assert formatar_brl(123456) == "R$ 1.234,56"
        assert formatar_brl(5) == "R$ 0,05"
        assert formatar_brl(-500) == "-R$ 5,00"


class TestReferenceScenario:
    """Venda de 10,00 em 05/01, venda de 15,00 em 10/02 e pagamento de 5,00 em 20/01."""

    def _source(self) -> FakeEventSource:
        return FakeEventSource(
            sales=[
                make_sale("v1", "s1", "10.00", ts(2026, 1, 5, 15)),
                make_sale("v2", "s1", "15.00", ts(2026, 2, 10, 15)),
            ],
            payments=[make_payment("p1", "s1", "5.00", ts(2026, 1, 20, 15))],
        )

    def test_january_scope(self) -> None:
        janeiro = DateRange(date(2026, 1, 1), date(2026, 1, 31))

        result = scoped_balance(self._source(), {"s1"}, janeiro)

        assert (result.earned, result.paid, result.balance) == (
            Decimal("10.00"), Decimal("5.00"), Decimal("5.00")
        )

    def test_lifetime(self) -> None:
        assert lifetime_balance(self._source(), "s1") == Decimal("20.00")

    def test_additive_over_adjacent_windows(self) -> None:
        source = self._source()
        janeiro = scoped_balance(source, {"s1"}, DateRange(date(2026, 1, 1), date(2026, 1, 31)))
        fevereiro = scoped_balance(source, {"s1"}, DateRange(date(2026, 2, 1), date(2026, 2, 28)))
        bimestre = scoped_balance(source, {"s1"}, DateRange(date(2026, 1, 1), date(2026, 2, 28)))

        assert bimestre.balance_centavos == janeiro.balance_centavos + fevereiro.balance_centavos

    def test_open_ended_ranges(self) -> None:
        source = self._source()

        desde_fevereiro = scoped_balance(source, {"s1"}, DateRange(start=date(2026, 2, 1)))
        ate_janeiro = scoped_balance(source, {"s1"}, DateRange(end=date(2026, 1, 31)))

        assert desde_fevereiro.earned == Decimal("15.00")
        assert ate_janeiro.balance == Decimal("5.00")

    def test_inverted_range_is_rejected(self) -> None:
        with pytest.raises(ValidationError):
            DateRange(date(2026, 2, 1), date(2026, 1, 1))
