"""Tests for handler consumption reconciliation."""

import pytest
from datetime import date
from decimal import Decimal

from livebase.core.cache import stock_snapshot_key
from livebase.core.exceptions import (
    ClosingExceedsOpeningError,
    ConsumptionInUseError,
    DuplicateConsumptionError,
    NotFoundError,
    PersistenceError,
)
from livebase.models.anchor_profit import AnchorProfit
from livebase.models.consumption import StockConsumption
from livebase.models.inventory import Inventory
from livebase.models.transfer import TransferRecord
from livebase.schemas.consumption import (
    ConsumptionCreate,
    ConsumptionImportRow,
    ConsumptionListParams,
    ConsumptionUpdate,
)
from livebase.schemas.stock import QuantityIn
from livebase.services.consumption_service import ConsumptionService


def add_transfer(s, source, destination, source_handler, destination_handler, box=0, pack=0, piece=0):
    s["db"].add(TransferRecord(
        base_id=s["base"].id, goods_id=s["jerky"].id,
        source_location_id=source.id, destination_location_id=destination.id,
        source_handler_id=source_handler.id, destination_handler_id=destination_handler.id,
        transfer_date=date(2024, 3, 6),
        box_quantity=box, pack_quantity=pack, piece_quantity=piece,
    ))
    s["db"].commit()


@pytest.fixture
def handed_over(base_setup):
    """The keeper has handed 2 boxes of beef jerky to the anchor in the live room."""
    s = base_setup
    add_transfer(s, s["main_warehouse"], s["live_room"], s["keeper"], s["anchor"], box=2)
    s["db"].add(Inventory(goods_id=s["jerky"].id, base_id=s["base"].id, average_cost=Decimal("5.00")))
    s["db"].commit()
    return s


@pytest.fixture
def service(base_setup, stock_cache, test_settings):
    return ConsumptionService(base_setup["db"], stock_cache, test_settings)


def make_create(s, closing, opening=None, consumption_date=date(2024, 3, 8), **overrides):
    fields = dict(
        consumption_date=consumption_date,
        goods_id=s["jerky"].id,
        location_id=s["live_room"].id,
        handler_id=s["anchor"].id,
        opening=opening,
        closing=closing,
    )
    fields.update(overrides)
    return ConsumptionCreate(**fields)


# ============== Opening stock ==============

class TestOpeningStock:
    def test_no_transfers(self, base_setup, service):
        s = base_setup
        opening = service.get_opening_stock(s["base"].id, s["jerky"].id, s["anchor"].id)
        assert opening.total_pieces == 0
        assert (opening.opening_box_qty, opening.opening_pack_qty, opening.opening_piece_qty) == (0, 0, 0)

    def test_transfers_to_handler(self, handed_over, service):
        s = handed_over
        opening = service.get_opening_stock(s["base"].id, s["jerky"].id, s["anchor"].id)
        assert opening.total_pieces == 100
        assert opening.opening_box_qty == 2
        assert opening.unit_price_per_box == Decimal("5.00")
        assert (opening.pack_per_box, opening.piece_per_pack) == (10, 5)

    def test_warehouse_sourced_transfer_not_charged(self, handed_over, service):
        s = handed_over
        # The anchor moves warehouse stock around; that stock is not theirs
        add_transfer(s, s["main_warehouse"], s["warehouse"], s["anchor"], s["keeper"], box=1)
        opening = service.get_opening_stock(s["base"].id, s["jerky"].id, s["anchor"].id)
        assert opening.total_pieces == 100

    def test_live_room_sourced_transfer_charged(self, handed_over, service):
        s = handed_over
        add_transfer(s, s["live_room"], s["warehouse"], s["anchor"], s["keeper"], box=1, pack=2)
        opening = service.get_opening_stock(s["base"].id, s["jerky"].id, s["anchor"].id)
        assert opening.total_pieces == 40
        assert (opening.opening_box_qty, opening.opening_pack_qty, opening.opening_piece_qty) == (0, 8, 0)

    def test_booked_consumption_reduces_opening(self, handed_over, service):
        s = handed_over
        service.create_consumption(s["base"].id, make_create(s, QuantityIn(box=1, pack=5)))
        opening = service.get_opening_stock(s["base"].id, s["jerky"].id, s["anchor"].id)
        assert opening.total_pieces == 75

    def test_unknown_goods(self, base_setup, service):
        with pytest.raises(NotFoundError):
            service.get_opening_stock(base_setup["base"].id, "missing", base_setup["anchor"].id)


# ============== Create ==============

class TestCreateConsumption:
    def test_derived_opening(self, handed_over, service):
        s = handed_over
        result = service.create_consumption(
            s["base"].id, make_create(s, QuantityIn(box=1, pack=5)), user_id="user-1"
        )

        assert (result.opening_box_qty, result.opening_pack_qty, result.opening_piece_qty) == (2, 0, 0)
        assert (result.closing_box_qty, result.closing_pack_qty, result.closing_piece_qty) == (1, 5, 0)
        assert (result.box_quantity, result.pack_quantity, result.piece_quantity) == (0, 5, 0)
        assert result.unit_price_per_box == Decimal("5.00")
        assert result.goods_name == "牛肉干"
        assert result.handler_name == "Wang Anchor"
        assert result.location_name == "Live Room A"

    def test_explicit_opening(self, base_setup, service):
        s = base_setup
        result = service.create_consumption(s["base"].id, make_create(
            s, QuantityIn(pack=3), opening=QuantityIn(box=1, piece=2),
        ))
        # 52 - 15 = 37 pieces
        assert (result.box_quantity, result.pack_quantity, result.piece_quantity) == (0, 7, 2)
        assert result.unit_price_per_box == Decimal("0")

    def test_closing_exceeds_opening(self, base_setup, service):
        s = base_setup
        data = make_create(s, QuantityIn(box=3), opening=QuantityIn(box=2))

        with pytest.raises(ClosingExceedsOpeningError) as exc_info:
            service.create_consumption(s["base"].id, data)

        assert "2 box 0 pack 0 piece" in str(exc_info.value)
        assert "3 box 0 pack 0 piece" in str(exc_info.value)
        assert s["db"].query(StockConsumption).count() == 0

    def test_closing_equal_to_opening_consumes_nothing(self, base_setup, service):
        s = base_setup
        result = service.create_consumption(
            s["base"].id, make_create(s, QuantityIn(box=2), opening=QuantityIn(box=2))
        )
        assert (result.box_quantity, result.pack_quantity, result.piece_quantity) == (0, 0, 0)

    def test_closing_over_derived_opening(self, handed_over, service):
        s = handed_over
        with pytest.raises(ClosingExceedsOpeningError):
            service.create_consumption(s["base"].id, make_create(s, QuantityIn(box=2, piece=1)))

    def test_duplicate_period(self, handed_over, service):
        s = handed_over
        service.create_consumption(s["base"].id, make_create(s, QuantityIn(box=1)))

        with pytest.raises(DuplicateConsumptionError):
            service.create_consumption(s["base"].id, make_create(s, QuantityIn(box=0)))

        # Another day is a separate period
        service.create_consumption(
            s["base"].id, make_create(s, QuantityIn(box=0), consumption_date=date(2024, 3, 9))
        )
        assert s["db"].query(StockConsumption).count() == 2

    def test_concurrent_duplicate_caught_by_constraint(self, handed_over, service, monkeypatch):
        s = handed_over
        service.create_consumption(s["base"].id, make_create(s, QuantityIn(box=1)))
        # Another writer slipped in between the uniqueness check and the commit
        monkeypatch.setattr(service, "_ensure_unique", lambda *args, **kwargs: None)

        with pytest.raises(DuplicateConsumptionError):
            service.create_consumption(s["base"].id, make_create(s, QuantityIn(box=0)))
        assert s["db"].query(StockConsumption).count() == 1

    def test_broken_reference_is_not_a_duplicate(self, handed_over, service):
        s = handed_over
        record = StockConsumption(
            base_id=s["base"].id, goods_id=s["jerky"].id, location_id=s["live_room"].id,
            handler_id="missing-handler", consumption_date=date(2024, 3, 8),
        )
        s["db"].add(record)

        with pytest.raises(PersistenceError):
            service._commit("create", record)
        assert s["db"].query(StockConsumption).count() == 0

    @pytest.mark.parametrize("override", ["location", "handler", "goods"])
    def test_references_must_belong_to_base(self, base_setup, service, override):
        s = base_setup
        overrides = {
            "location": {"location_id": s["foreign_location"].id},
            "handler": {"handler_id": s["foreign_handler"].id},
            "goods": {"goods_id": "missing"},
        }[override]
        data = make_create(s, QuantityIn(), opening=QuantityIn(box=1), **overrides)

        with pytest.raises(NotFoundError):
            service.create_consumption(s["base"].id, data)

    def test_inactive_handler_rejected(self, base_setup, service):
        s = base_setup
        s["anchor"].is_active = False
        s["db"].commit()
        with pytest.raises(NotFoundError):
            service.create_consumption(s["base"].id, make_create(s, QuantityIn(), opening=QuantityIn(box=1)))

    def test_write_clears_cached_snapshot(self, handed_over, service, stock_cache):
        s = handed_over
        service.stock.get_base_real_time_stock(s["base"].id)
        assert stock_cache.get(stock_snapshot_key(s["base"].id)) is not None

        service.create_consumption(s["base"].id, make_create(s, QuantityIn(box=1)))

        assert stock_cache.get(stock_snapshot_key(s["base"].id)) is None

    def test_consumption_reduces_location_stock(self, handed_over, service):
        s = handed_over
        service.create_consumption(s["base"].id, make_create(s, QuantityIn(box=1, pack=5)))
        stock = service.stock.get_stock(s["base"].id, s["jerky"].id, s["live_room"].id)
        assert stock.total_pieces == 75


# ============== Import ==============

class TestImportConsumption:
    @pytest.mark.parametrize("goods_name", ["Beef Jerky", "牛肉干", "beef jerky", "JERKY"])
    def test_resolves_goods_by_any_name(self, handed_over, service, goods_name):
        s = handed_over
        row = ConsumptionImportRow(
            consumption_date=date(2024, 3, 8),
            goods_name=goods_name,
            location_name=" Live Room A ",
            handler_name="Wang Anchor",
            closing=QuantityIn(box=1),
        )
        result = service.import_consumption(s["base"].id, row, user_id="importer")
        assert result.goods_id == s["jerky"].id
        assert result.opening_box_qty == 2
        assert result.box_quantity == 1

    def test_location_and_handler_match_ignoring_case(self, handed_over, service):
        s = handed_over
        row = ConsumptionImportRow(
            consumption_date=date(2024, 3, 8), goods_name="Beef Jerky",
            location_name="live room a", handler_name="WANG ANCHOR",
            closing=QuantityIn(box=1),
        )
        result = service.import_consumption(s["base"].id, row)
        assert result.location_id == s["live_room"].id
        assert result.handler_id == s["anchor"].id

    def test_partial_name_does_not_match(self, handed_over, service):
        s = handed_over
        row = ConsumptionImportRow(
            consumption_date=date(2024, 3, 8), goods_name="Beef",
            location_name="Live Room A", handler_name="Wang Anchor",
        )
        with pytest.raises(NotFoundError):
            service.import_consumption(s["base"].id, row)

    def test_unknown_handler(self, handed_over, service):
        s = handed_over
        row = ConsumptionImportRow(
            consumption_date=date(2024, 3, 8), goods_name="Beef Jerky",
            location_name="Live Room A", handler_name="Nobody",
        )
        with pytest.raises(NotFoundError):
            service.import_consumption(s["base"].id, row)


# ============== Update / delete ==============

class TestUpdateConsumption:
    def test_opening_excludes_own_record(self, handed_over, service):
        s = handed_over
        created = service.create_consumption(s["base"].id, make_create(s, QuantityIn(box=1, pack=5)))

        updated = service.update_consumption(
            s["base"].id, created.id, ConsumptionUpdate(closing=QuantityIn(box=1)), user_id="user-2"
        )

        assert updated.opening_box_qty == 2
        assert (updated.box_quantity, updated.pack_quantity, updated.piece_quantity) == (1, 0, 0)

    def test_closing_kept_when_not_given(self, handed_over, service):
        s = handed_over
        created = service.create_consumption(s["base"].id, make_create(s, QuantityIn(box=1, pack=5)))

        updated = service.update_consumption(
            s["base"].id, created.id, ConsumptionUpdate(notes="recounted")
        )

        assert (updated.closing_box_qty, updated.closing_pack_qty) == (1, 5)
        assert updated.pack_quantity == 5
        assert updated.notes == "recounted"

    def test_cost_snapshot_kept_for_same_goods(self, handed_over, service):
        s = handed_over
        created = service.create_consumption(s["base"].id, make_create(s, QuantityIn(box=1)))
        inventory = s["db"].query(Inventory).one()
        inventory.average_cost = Decimal("9.00")
        s["db"].commit()

        updated = service.update_consumption(
            s["base"].id, created.id, ConsumptionUpdate(closing=QuantityIn(box=0))
        )
        assert updated.unit_price_per_box == Decimal("5.00")

    def test_update_rejects_closing_over_opening(self, handed_over, service):
        s = handed_over
        created = service.create_consumption(s["base"].id, make_create(s, QuantityIn(box=1)))
        with pytest.raises(ClosingExceedsOpeningError):
            service.update_consumption(
                s["base"].id, created.id, ConsumptionUpdate(closing=QuantityIn(box=3))
            )

    def test_update_into_existing_period(self, handed_over, service):
        s = handed_over
        service.create_consumption(s["base"].id, make_create(s, QuantityIn(box=2)))
        other = service.create_consumption(
            s["base"].id, make_create(s, QuantityIn(box=2), consumption_date=date(2024, 3, 9))
        )
        with pytest.raises(DuplicateConsumptionError):
            service.update_consumption(
                s["base"].id, other.id, ConsumptionUpdate(consumption_date=date(2024, 3, 8))
            )

    def test_update_unknown_record(self, base_setup, service):
        with pytest.raises(NotFoundError):
            service.update_consumption(base_setup["base"].id, "missing", ConsumptionUpdate())


class TestDeleteConsumption:
    def test_delete(self, handed_over, service):
        s = handed_over
        created = service.create_consumption(s["base"].id, make_create(s, QuantityIn(box=1)))

        service.delete_consumption(s["base"].id, created.id, user_id="user-1")

        assert s["db"].query(StockConsumption).count() == 0
        opening = service.get_opening_stock(s["base"].id, s["jerky"].id, s["anchor"].id)
        assert opening.total_pieces == 100

    def test_delete_with_anchor_profit(self, handed_over, service):
        s = handed_over
        created = service.create_consumption(s["base"].id, make_create(s, QuantityIn(box=1)))
        s["db"].add(AnchorProfit(
            base_id=s["base"].id, consumption_id=created.id, handler_id=s["anchor"].id,
            profit_date=date(2024, 3, 8), gmv_amount=Decimal("120.00"),
        ))
        s["db"].commit()

        with pytest.raises(ConsumptionInUseError):
            service.delete_consumption(s["base"].id, created.id)
        assert s["db"].query(StockConsumption).count() == 1

    def test_delete_from_other_base(self, handed_over, service):
        s = handed_over
        created = service.create_consumption(s["base"].id, make_create(s, QuantityIn(box=1)))
        with pytest.raises(NotFoundError):
            service.delete_consumption(s["other_base"].id, created.id)


# ============== Reads ==============

class TestConsumptionReads:
    @pytest.fixture
    def booked(self, handed_over, service):
        s = handed_over
        service.create_consumption(s["base"].id, make_create(s, QuantityIn(box=1, pack=5)))
        service.create_consumption(
            s["base"].id, make_create(s, QuantityIn(box=1), consumption_date=date(2024, 3, 10))
        )
        service.create_consumption(s["base"].id, make_create(
            s, QuantityIn(), opening=QuantityIn(piece=4), consumption_date=date(2024, 3, 9),
            goods_id=s["tea"].id,
        ))
        return s

    def test_list_newest_first(self, booked, service):
        page = service.get_consumption_list(booked["base"].id)
        assert page.total == 3
        assert [r.consumption_date for r in page.items] == [
            date(2024, 3, 10), date(2024, 3, 9), date(2024, 3, 8),
        ]

    def test_list_filters(self, booked, service):
        base_id = booked["base"].id

        by_name = service.get_consumption_list(base_id, ConsumptionListParams(goods_name="beef"))
        assert by_name.total == 2

        by_goods = service.get_consumption_list(base_id, ConsumptionListParams(goods_id=booked["tea"].id))
        assert by_goods.total == 1

        by_dates = service.get_consumption_list(base_id, ConsumptionListParams(
            start_date=date(2024, 3, 9), end_date=date(2024, 3, 9),
        ))
        assert [r.goods_code for r in by_dates.items] == ["G002"]

    def test_list_pagination(self, booked, service):
        page = service.get_consumption_list(booked["base"].id, ConsumptionListParams(skip=2, limit=2))
        assert len(page.items) == 1
        assert page.has_more is False

    def test_stats(self, booked, service):
        stats = service.get_consumption_stats(booked["base"].id, today=date(2024, 3, 10))
        assert stats.total_records == 3
        assert stats.total_goods == 2
        # 5 packs, then 25 pieces (0, 5, 0), then 4 pieces of tea
        assert stats.total_pack_quantity == 10
        assert stats.total_piece_quantity == 4
        assert stats.today_records == 1
