from decimal import Decimal

from gstpos.domain.gst import extract_tax
from gstpos.domain.money import round2


def test_extract_tax_exact_for_whole_taxable_amount():
    gst = extract_tax(1050, 2.5, 2.5)

    assert gst.taxable == Decimal("1000.00")
    assert gst.cgst == Decimal("25.00")
    assert gst.sgst == Decimal("25.00")
    assert gst.total == Decimal("1050.00")


def test_extract_tax_rounds_every_step():
    gst = extract_tax(500, 2.5, 2.5)

    assert gst.taxable == Decimal("476.19")
    assert gst.cgst == Decimal("11.90")
    assert gst.sgst == Decimal("11.90")
    # one cent lost to independent rounding
    assert gst.total == Decimal("499.99")


def test_extract_tax_zero_is_all_zero():
    gst = extract_tax(0, 9, 9)

    assert (gst.taxable, gst.cgst, gst.sgst, gst.total) == (0, 0, 0, 0)


def test_extract_tax_defaults_to_five_percent_split_evenly():
    gst = extract_tax(Decimal("2975"))

    assert gst.taxable == Decimal("2833.33")
    assert gst.cgst == Decimal("70.83")
    assert gst.sgst == Decimal("70.83")
    assert gst.tax == Decimal("141.66")


def test_extract_tax_accepts_string_and_higher_rates():
    assert extract_tax("105", "2.5", "2.5").taxable == Decimal("100.00")

    gst = extract_tax(1180, 9, 9)
    assert gst.taxable == Decimal("1000.00")
    assert gst.cgst == Decimal("90.00")
    assert gst.sgst == Decimal("90.00")


def test_extract_tax_total_stays_within_two_cents():
    for amount in ("0.01", "1", "99.99", "333.33", "500", "1234.56", "2975", "10000.05"):
        for rate in ("0", "2.5", "6", "9", "14"):
            gst = extract_tax(amount, rate, rate)
            assert gst.total == round2(gst.taxable + gst.cgst + gst.sgst)
            assert abs(gst.total - Decimal(amount)) <= Decimal("0.02")
