"""Tests for box/pack/piece unit arithmetic."""

import pytest
from decimal import Decimal

from livebase.services.units import (
    Quantity,
    UnitSpec,
    add,
    convert_pieces_to_unit,
    format_quantity,
    from_pieces,
    normalize,
    normalize_borrow,
    subtract,
    to_box_equivalent,
    to_pieces,
)


class TestToPieces:
    def test_flattens_all_units(self):
        assert to_pieces(Quantity(2, 3, 4), 10, 5) == 2 * 50 + 3 * 5 + 4

    def test_negative_components(self):
        assert to_pieces(Quantity(-1, 2, -3), 10, 5) == -50 + 10 - 3

    def test_zero_ratio_treated_as_one(self):
        assert to_pieces(Quantity(1, 1, 1), 0, None) == 3


class TestFromPieces:
    @pytest.mark.parametrize("total", [0, 1, 49, 50, 51, 137, 1000, -1, -50, -137])
    def test_in_range_and_preserves_total(self, total):
        qty = from_pieces(total, 10, 5)
        assert 0 <= qty.pack < 10
        assert 0 <= qty.piece < 5
        assert to_pieces(qty, 10, 5) == total

    def test_positive_decomposition(self):
        assert from_pieces(137, 10, 5) == Quantity(2, 7, 2)

    def test_negative_uses_floored_division(self):
        assert from_pieces(-1, 2, 10) == Quantity(-1, 1, 9)


class TestNormalizeBorrow:
    @pytest.mark.parametrize("box,pack,piece", [
        (0, 0, 0),
        (1, -1, 0),
        (0, 0, -7),
        (3, -12, -13),
        (-2, 5, -1),
        (2, 15, 8),
    ])
    def test_preserves_total(self, box, pack, piece):
        result = normalize_borrow(box, pack, piece, 10, 5)
        assert to_pieces(result, 10, 5) == to_pieces(Quantity(box, pack, piece), 10, 5)

    def test_borrows_pack_for_negative_piece(self):
        # -7 pieces needs two packs (ceil(7 / 5))
        assert normalize_borrow(1, 3, -7, 10, 5) == Quantity(1, 1, 3)

    def test_borrows_box_for_negative_pack(self):
        assert normalize_borrow(2, -1, 0, 10, 5) == Quantity(1, 9, 0)

    def test_positive_overflow_untouched(self):
        assert normalize_borrow(0, 15, 8, 10, 5) == Quantity(0, 15, 8)

    def test_sub_units_non_negative(self):
        result = normalize_borrow(3, -12, -13, 10, 5)
        assert result.pack >= 0
        assert result.piece >= 0


def test_normalize_carries_overflow():
    assert normalize(Quantity(0, 15, 8), 10, 5) == Quantity(1, 6, 3)


def test_add_and_subtract_are_column_wise():
    a, b = Quantity(1, 2, 3), Quantity(0, 5, 4)
    assert add(a, b) == Quantity(1, 7, 7)
    assert subtract(a, b) == Quantity(1, -3, -1)


def test_box_equivalent_is_fractional():
    assert to_box_equivalent(Quantity(1, 5, 0), 10, 5) == Decimal("1.5")
    assert to_box_equivalent(Quantity(0, 0, 25), 10, 5) == Decimal("0.5")


@pytest.mark.parametrize("unit,expected", [
    ("box", Decimal("2.5")),
    ("pack", Decimal("25")),
    ("piece", Decimal("125")),
])
def test_convert_pieces_to_unit(unit, expected):
    assert convert_pieces_to_unit(125, unit, 10, 5) == expected


def test_unit_spec_for_goods_guards_legacy_ratios():
    class LegacyGoods:
        pack_per_box = 0
        piece_per_pack = None

    ratios = UnitSpec.for_goods(LegacyGoods())
    assert ratios == UnitSpec(1, 1)
    assert ratios.pieces_per_box == 1


def test_format_quantity():
    assert format_quantity(Quantity(2, 3, 0)) == "2 box 3 pack 0 piece"
