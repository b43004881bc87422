"""Tests for transfers between locations."""

import logging

import pytest
from datetime import date

from pydantic import ValidationError

from livebase.core.cache import stock_snapshot_key
from livebase.core.exceptions import DomainValidationError, NotFoundError
from livebase.models.arrival import ArrivalRecord
from livebase.models.goods import GoodsLocalSetting
from livebase.models.transfer import TransferRecord, TransferStatus
from livebase.schemas.transfer import TransferCreate, TransferListParams
from livebase.services.consumption_service import ConsumptionService
from livebase.services.transfer_record_service import TransferRecordService


@pytest.fixture
def service(base_setup, stock_cache, test_settings):
    return TransferRecordService(base_setup["db"], stock_cache, test_settings)


def make_transfer(s, source=None, destination=None, box=0, pack=0, piece=0, **overrides):
    fields = dict(
        goods_id=s["jerky"].id,
        source_location_id=(source or s["main_warehouse"]).id,
        destination_location_id=(destination or s["live_room"]).id,
        source_handler_id=s["keeper"].id,
        destination_handler_id=s["anchor"].id,
        transfer_date=date(2024, 3, 6),
        box_quantity=box,
        pack_quantity=pack,
        piece_quantity=piece,
    )
    fields.update(overrides)
    return TransferCreate(**fields)


@pytest.fixture
def stocked(base_setup):
    """Two boxes of beef jerky have arrived in the main warehouse."""
    s = base_setup
    s["db"].add(ArrivalRecord(
        base_id=s["base"].id, goods_id=s["jerky"].id, purchase_order_id=s["purchase_order"].id,
        location_id=s["main_warehouse"].id, handler_id=s["keeper"].id,
        arrival_date=date(2024, 3, 5), box_quantity=2,
    ))
    s["db"].commit()
    return s


class TestCreateTransfer:
    def test_moves_stock(self, stocked, service):
        s = stocked
        result = service.create_transfer_record(s["base"].id, make_transfer(s, box=1, pack=2), user_id="user-1")

        assert result.status == TransferStatus.COMPLETED
        assert result.source_location_name == "Main Warehouse"
        assert result.destination_handler_name == "Wang Anchor"
        assert result.goods_name == "牛肉干"

        source = service.stock.get_stock(s["base"].id, s["jerky"].id, s["main_warehouse"].id)
        destination = service.stock.get_stock(s["base"].id, s["jerky"].id, s["live_room"].id)
        assert source.total_pieces == 40
        assert destination.total_pieces == 60

    def test_hands_goods_to_handler(self, stocked, service, stock_cache, test_settings):
        s = stocked
        service.create_transfer_record(s["base"].id, make_transfer(s, box=1))

        consumption = ConsumptionService(s["db"], stock_cache, test_settings)
        opening = consumption.get_opening_stock(s["base"].id, s["jerky"].id, s["anchor"].id)
        assert opening.total_pieces == 50

    def test_overdraw_is_booked_with_warning(self, stocked, service, caplog):
        s = stocked
        with caplog.at_level(logging.WARNING, logger="livebase.services.transfer_record_service"):
            service.create_transfer_record(s["base"].id, make_transfer(s, box=3))

        assert "overdraws" in caplog.text
        source = service.stock.get_stock(s["base"].id, s["jerky"].id, s["main_warehouse"].id)
        assert source.total_pieces == -50

    def test_same_location_rejected_by_schema(self, base_setup):
        s = base_setup
        with pytest.raises(ValidationError):
            make_transfer(s, source=s["live_room"], destination=s["live_room"], box=1)

    def test_same_location_rejected_by_service(self, base_setup, service):
        s = base_setup
        data = TransferCreate.model_construct(
            **make_transfer(s, box=1).model_dump(),
        )
        data.destination_location_id = data.source_location_id
        with pytest.raises(DomainValidationError):
            service.create_transfer_record(s["base"].id, data)

    def test_zero_quantity_rejected(self, stocked, service):
        s = stocked
        with pytest.raises(DomainValidationError):
            service.create_transfer_record(s["base"].id, make_transfer(s))

    def test_goods_inactive_for_base(self, stocked, service):
        s = stocked
        local = s["db"].query(GoodsLocalSetting).filter(GoodsLocalSetting.goods_id == s["jerky"].id).one()
        local.is_active = False
        s["db"].commit()

        with pytest.raises(NotFoundError):
            service.create_transfer_record(s["base"].id, make_transfer(s, box=1))

    @pytest.mark.parametrize("field,key", [
        ("source_location_id", "foreign_location"),
        ("destination_location_id", "foreign_location"),
        ("source_handler_id", "foreign_handler"),
        ("destination_handler_id", "foreign_handler"),
    ])
    def test_references_must_belong_to_base(self, stocked, service, field, key):
        s = stocked
        data = make_transfer(s, box=1, **{field: s[key].id})
        with pytest.raises(NotFoundError):
            service.create_transfer_record(s["base"].id, data)
        assert s["db"].query(TransferRecord).count() == 0

    def test_clears_cached_snapshot(self, stocked, service, stock_cache):
        s = stocked
        service.stock.get_base_real_time_stock(s["base"].id)
        service.create_transfer_record(s["base"].id, make_transfer(s, box=1))
        assert stock_cache.get(stock_snapshot_key(s["base"].id)) is None


class TestTransferLifecycle:
    def test_update_status(self, stocked, service):
        s = stocked
        created = service.create_transfer_record(
            s["base"].id, make_transfer(s, box=1, status=TransferStatus.PENDING)
        )

        updated = service.update_transfer_status(
            s["base"].id, created.id, TransferStatus.CANCELLED, user_id="user-2"
        )

        assert updated.status == TransferStatus.CANCELLED
        assert s["db"].get(TransferRecord, created.id).updated_by == "user-2"
        # Every status counts towards stock
        source = service.stock.get_stock(s["base"].id, s["jerky"].id, s["main_warehouse"].id)
        assert source.total_pieces == 50

    def test_delete_restores_stock(self, stocked, service):
        s = stocked
        created = service.create_transfer_record(s["base"].id, make_transfer(s, box=1))

        service.delete_transfer_record(s["base"].id, created.id)

        source = service.stock.get_stock(s["base"].id, s["jerky"].id, s["main_warehouse"].id)
        assert source.total_pieces == 100

    def test_unknown_record(self, base_setup, service):
        with pytest.raises(NotFoundError):
            service.update_transfer_status(base_setup["base"].id, "missing", TransferStatus.CANCELLED)
        with pytest.raises(NotFoundError):
            service.delete_transfer_record(base_setup["base"].id, "missing")


class TestTransferList:
    def test_filters(self, stocked, service):
        s = stocked
        service.create_transfer_record(s["base"].id, make_transfer(s, box=1))
        service.create_transfer_record(s["base"].id, make_transfer(
            s, source=s["live_room"], destination=s["warehouse"], pack=2,
            source_handler_id=s["anchor"].id, destination_handler_id=s["keeper"].id,
            transfer_date=date(2024, 3, 7), status=TransferStatus.PENDING,
        ))

        page = service.get_base_transfer_records(s["base"].id)
        assert page.total == 2
        assert [r.transfer_date for r in page.items] == [date(2024, 3, 7), date(2024, 3, 6)]

        # Either side of the transfer matches
        by_location = service.get_base_transfer_records(
            s["base"].id, TransferListParams(location_id=s["live_room"].id)
        )
        assert by_location.total == 2
        by_warehouse = service.get_base_transfer_records(
            s["base"].id, TransferListParams(location_id=s["warehouse"].id)
        )
        assert by_warehouse.total == 1

        by_status = service.get_base_transfer_records(
            s["base"].id, TransferListParams(status=TransferStatus.PENDING)
        )
        assert [r.pack_quantity for r in by_status.items] == [2]

        by_handler = service.get_base_transfer_records(
            s["base"].id, TransferListParams(handler_id=s["second_anchor"].id)
        )
        assert by_handler.total == 0
