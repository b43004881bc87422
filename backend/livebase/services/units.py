"""Box / pack / piece quantity arithmetic.

Every good defines ``pack_per_box`` and ``piece_per_pack``:
1 box = pack_per_box packs = pack_per_box * piece_per_pack pieces.

Negative totals are decomposed with floored division, so the sign lives in
``box`` and ``pack``/``piece`` always stay in range:
-1 piece with (pack_per_box=2, piece_per_pack=10) -> (-1, 1, 9).
"""

from decimal import Decimal
from typing import NamedTuple, Optional, Union

from livebase.models.goods import QuantityUnit


class Quantity(NamedTuple):
    box: int = 0
    pack: int = 0
    piece: int = 0

    def as_dict(self) -> dict:
        return {"box": self.box, "pack": self.pack, "piece": self.piece}


ZERO = Quantity(0, 0, 0)


def _ratio(value: Optional[int]) -> int:
    """Legacy rows may carry 0 or NULL ratios; treat them as 1."""
    if not value or value < 1:
        return 1
    return int(value)


class UnitSpec(NamedTuple):
    """Conversion ratios of one good."""

    pack_per_box: int = 1
    piece_per_pack: int = 1

    @classmethod
    def of(cls, pack_per_box: Optional[int], piece_per_pack: Optional[int]) -> "UnitSpec":
        return cls(_ratio(pack_per_box), _ratio(piece_per_pack))

    @classmethod
    def for_goods(cls, goods) -> "UnitSpec":
        return cls.of(goods.pack_per_box, goods.piece_per_pack)

    @property
    def pieces_per_box(self) -> int:
        return self.pack_per_box * self.piece_per_pack


def add(a: Quantity, b: Quantity) -> Quantity:
    """Column-wise sum, no carrying."""
    return Quantity(a[0] + b[0], a[1] + b[1], a[2] + b[2])


def subtract(a: Quantity, b: Quantity) -> Quantity:
    """Column-wise difference, no borrowing."""
    return Quantity(a[0] - b[0], a[1] - b[1], a[2] - b[2])


def to_pieces(qty: Quantity, pack_per_box: int, piece_per_pack: int) -> int:
    """Flatten a triple to a piece count. Works for negative components."""
    ppb, ppp = _ratio(pack_per_box), _ratio(piece_per_pack)
    box, pack, piece = qty
    return box * ppb * ppp + pack * ppp + piece


def from_pieces(total_pieces: int, pack_per_box: int, piece_per_pack: int) -> Quantity:
    """Decompose a piece count with floored division.

    For any total: 0 <= pack < pack_per_box and 0 <= piece < piece_per_pack.
    """
    ppb, ppp = _ratio(pack_per_box), _ratio(piece_per_pack)
    box, rest = divmod(total_pieces, ppb * ppp)
    pack, piece = divmod(rest, ppp)
    return Quantity(box, pack, piece)


def normalize_borrow(box: int, pack: int, piece: int, pack_per_box: int, piece_per_pack: int) -> Quantity:
    """Remove negative sub-units by borrowing from the next larger unit.

    Only deficits are handled; positive overflow is left untouched so the
    per-column shape of a ledger delta survives. The flattened total never
    changes.
    """
    ppb, ppp = _ratio(pack_per_box), _ratio(piece_per_pack)
    if piece < 0:
        borrow_packs = -(piece // ppp)  # ceil(|piece| / ppp)
        pack -= borrow_packs
        piece += borrow_packs * ppp
    if pack < 0:
        borrow_boxes = -(pack // ppb)
        box -= borrow_boxes
        pack += borrow_boxes * ppb
    return Quantity(box, pack, piece)


def normalize(qty: Quantity, pack_per_box: int, piece_per_pack: int) -> Quantity:
    """Carry and borrow until both sub-units are in range."""
    return from_pieces(to_pieces(qty, pack_per_box, piece_per_pack), pack_per_box, piece_per_pack)


def to_box_equivalent(qty: Quantity, pack_per_box: int, piece_per_pack: int) -> Decimal:
    """Fractional number of boxes, used for cost weighting and valuation."""
    ppb, ppp = _ratio(pack_per_box), _ratio(piece_per_pack)
    box, pack, piece = qty
    return Decimal(box) + Decimal(pack) / Decimal(ppb) + Decimal(piece) / Decimal(ppb * ppp)


def convert_pieces_to_unit(
    total_pieces: int,
    unit: Union[QuantityUnit, str],
    pack_per_box: int,
    piece_per_pack: int,
) -> Decimal:
    """Express a piece count in ``unit`` (fractional)."""
    ppb, ppp = _ratio(pack_per_box), _ratio(piece_per_pack)
    unit = QuantityUnit(unit)
    if unit is QuantityUnit.BOX:
        return Decimal(total_pieces) / Decimal(ppb * ppp)
    if unit is QuantityUnit.PACK:
        return Decimal(total_pieces) / Decimal(ppp)
    return Decimal(total_pieces)


def format_quantity(qty: Quantity) -> str:
    """Human-readable form used in error messages, e.g. ``2 box 3 pack 0 piece``."""
    box, pack, piece = qty
    return f"{box} box {pack} pack {piece} piece"
