"""
Property-based tests for the totals calculator.

Properties checked on generated lines and tax lists:
- grand_total == net_total + tax_total, tax_total == sum of breakdown
- every amount is quantized to the currency precision
- line order does not change the document totals
- computing twice gives identical results
- chained taxes never yield less than the same taxes on HT alone
- amount in words never fails for saved totals
"""

from decimal import Decimal

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st
from hypothesis.strategies import composite

from gescom_engines.amount_words import amount_in_words
from gescom_engines.totals import TotalsCalculator
from gescom_kernel.domain.dtos import LineInput
from gescom_kernel.domain.taxes import CalculationBase, FixedTax, PercentageTax

SETTINGS = settings(
    max_examples=150,
    suppress_health_check=[HealthCheck.too_slow, HealthCheck.function_scoped_fixture],
)


def _decimals(min_value, max_value, places):
    return st.decimals(
        min_value=Decimal(min_value),
        max_value=Decimal(max_value),
        places=places,
        allow_nan=False,
        allow_infinity=False,
    )


@composite
def lines(draw):
    return LineInput(
        quantity=draw(_decimals("0", "1000", 3)),
        unit_price=draw(_decimals("0", "100000", 3)),
        discount_percent=draw(_decimals("0", "100", 2)),
    )


@composite
def tax_lists(draw, base=None):
    count = draw(st.integers(min_value=0, max_value=4))
    taxes = []
    for i in range(count):
        if draw(st.booleans()):
            taxes.append(FixedTax(
                tax_id=f"fixed{i}",
                name=f"Fixed {i}",
                value=draw(_decimals("0", "50", 3)),
                order=i,
            ))
        else:
            taxes.append(PercentageTax(
                tax_id=f"pct{i}",
                name=f"Pct {i}",
                value=draw(_decimals("0", "30", 2)),
                calculation_base=base or draw(st.sampled_from(list(CalculationBase))),
                order=i,
            ))
    return taxes


def _quantized(value: Decimal, places: int) -> bool:
    return value == value.quantize(Decimal(1).scaleb(-places))


class TestTotalsProperties:

    @given(
        document_lines=st.lists(lines(), max_size=8),
        taxes=tax_lists(),
        places=st.sampled_from([0, 2, 3]),
    )
    @SETTINGS
    def test_totals_add_up(self, document_lines, taxes, places):
        totals = TotalsCalculator(places).compute(lines=document_lines, taxes=taxes)

        assert totals.grand_total == totals.net_total + totals.tax_total
        assert totals.tax_total == sum((e.amount for e in totals.tax_breakdown), Decimal("0"))
        assert totals.net_total == sum((line.net_amount for line in totals.lines), Decimal("0"))
        for amount in [totals.net_total, totals.tax_total, totals.grand_total]:
            assert _quantized(amount, places)
        for entry in totals.tax_breakdown:
            assert entry.amount >= 0
            assert _quantized(entry.amount, places)
        assert [e.tax_id for e in totals.tax_breakdown] == [t.tax_id for t in taxes]

    @given(
        document_lines=st.lists(lines(), min_size=2, max_size=8),
        taxes=tax_lists(),
        data=st.data(),
    )
    @SETTINGS
    def test_line_order_irrelevant(self, document_lines, taxes, data):
        shuffled = data.draw(st.permutations(document_lines))
        calculator = TotalsCalculator()

        first = calculator.compute(lines=document_lines, taxes=taxes)
        second = calculator.compute(lines=shuffled, taxes=taxes)

        assert first.grand_total == second.grand_total
        assert first.tax_breakdown == second.tax_breakdown

    @given(document_lines=st.lists(lines(), max_size=6), taxes=tax_lists())
    @SETTINGS
    def test_deterministic(self, document_lines, taxes):
        calculator = TotalsCalculator()
        assert calculator.compute(lines=document_lines, taxes=taxes) == calculator.compute(
            lines=document_lines, taxes=taxes,
        )

    @given(
        document_lines=st.lists(lines(), min_size=1, max_size=6),
        taxes=tax_lists(base=CalculationBase.TOTAL_HT_WITH_PREVIOUS_TAXES),
    )
    @SETTINGS
    def test_chaining_never_lowers_tax(self, document_lines, taxes):
        on_ht = [
            t.with_base(CalculationBase.TOTAL_HT) if isinstance(t, PercentageTax) else t
            for t in taxes
        ]
        calculator = TotalsCalculator()

        chained = calculator.compute(lines=document_lines, taxes=taxes)
        flat = calculator.compute(lines=document_lines, taxes=on_ht)

        assert chained.tax_total >= flat.tax_total

    @given(document_lines=st.lists(lines(), max_size=4), taxes=tax_lists())
    @SETTINGS
    def test_amount_in_words_total(self, document_lines, taxes):
        totals = TotalsCalculator().compute(lines=document_lines, taxes=taxes)
        words = amount_in_words(totals.grand_total)
        assert words.endswith(("DINAR", "DINARS", "MILLIMES"))
