# Overview: Pytest coverage for the sale lifecycle and the stock it moves.

from datetime import date

import pytest

from closet.errors import (
    InsufficientStock,
    InvalidAmount,
    InvalidQuantity,
    InvalidSchedule,
    InvalidStateTransition,
    NotFound,
    ValidationError,
)
from closet.extensions import db
from closet.models import Installment, Product, ProductVariant, Sale, SaleLine, StockReservation
from closet.services import catalog_service, installment_service, sales_service, stock_service


def _product(product_id):
    db.session.expire_all()
    return db.session.get(Product, product_id)


class TestMalinha:
    """Consignment bags: goods leave reserved and are committed on confirmation."""

    def test_reserve_then_confirm(self, db_session, make_product, customer):
        dress = make_product(name="Vestido Midi", stock=5)
        skirt = make_product(name="Saia Plissada", price_cents=8000, stock=3)

        sale = sales_service.create_sale(
            [
                {"product_id": dress.id, "quantity": 2, "size": "M", "color": "azul"},
                {"product_id": skirt.id, "quantity": 1},
            ],
            sale_type="malinha",
            customer_id=customer.id,
        )

        assert sale.status == "pending"
        assert sale.total_cents == 28000
        assert sale.payment_status == "pending"
        assert (_product(dress.id).stock, _product(dress.id).reserved) == (5, 2)
        assert (_product(skirt.id).stock, _product(skirt.id).reserved) == (3, 1)

        confirmed = sales_service.confirm_sale(sale.id)

        assert confirmed.status == "paid"
        assert confirmed.confirmed_at is not None
        assert (_product(dress.id).stock, _product(dress.id).reserved) == (3, 0)
        assert (_product(skirt.id).stock, _product(skirt.id).reserved) == (2, 0)
        statuses = {r.status for r in db_session.query(StockReservation).filter_by(sale_id=sale.id)}
        assert statuses == {"committed"}

    def test_credit_malinha_owes_after_confirmation(self, db_session, make_product):
        product = make_product(price_cents=12000)
        sale = sales_service.create_sale(
            [{"product_id": product.id, "quantity": 1}],
            sale_type="malinha",
            payment_method="fiado",
            entry_payment_cents=2000,
        )

        confirmed = sales_service.confirm_sale(sale.id)

        assert confirmed.status == "partial"
        assert confirmed.paid_cents == 2000
        assert confirmed.remaining_cents == 10000

    def test_confirm_fails_after_reservation_released(self, db_session, make_product):
        product = make_product(stock=5)
        sale = sales_service.create_sale([{"product_id": product.id, "quantity": 2}], sale_type="malinha")
        reservation_id = sale.lines[0].reservation_id
        stock_service.release(reservation_id)

        with pytest.raises(InvalidStateTransition):
            sales_service.confirm_sale(sale.id)

        assert _product(product.id).stock == 5
        assert db_session.get(Sale, sale.id).status == "pending"

    def test_confirm_only_pending(self, db_session, make_product):
        product = make_product()
        sale = sales_service.create_sale([{"product_id": product.id, "quantity": 1}])
        with pytest.raises(InvalidStateTransition):
            sales_service.confirm_sale(sale.id)

    def test_cancel_releases_reservations(self, db_session, make_product):
        product = make_product(stock=4)
        sale = sales_service.create_sale([{"product_id": product.id, "quantity": 3}], sale_type="malinha")

        cancelled = sales_service.cancel_sale(sale.id, reason="  cliente devolveu  ")

        assert cancelled.status == "cancelled"
        assert cancelled.cancel_reason == "cliente devolveu"
        assert cancelled.payment_status == "cancelled"
        assert cancelled.remaining_cents == 0
        assert (_product(product.id).stock, _product(product.id).reserved) == (4, 0)

    def test_cancel_after_confirmation_restocks(self, db_session, make_product):
        product = make_product(stock=4)
        sale = sales_service.create_sale([{"product_id": product.id, "quantity": 3}], sale_type="malinha")
        sales_service.confirm_sale(sale.id)
        assert _product(product.id).stock == 1

        sales_service.cancel_sale(sale.id)

        assert (_product(product.id).stock, _product(product.id).reserved) == (4, 0)


class TestDirect:

    def test_direct_sale_commits_stock(self, db_session, make_product):
        product = make_product(stock=3, price_cents=9900, cost_price_cents=3000)

        sale = sales_service.create_sale([{"product_id": product.id, "quantity": 2}], payment_method="pix")

        assert sale.status == "paid"
        assert sale.payment_status == "paid"
        assert sale.paid_cents == 19800
        assert sale.remaining_cents == 0
        assert _product(product.id).stock == 1
        line = sale.lines[0]
        assert line.reservation_id is None
        assert (line.unit_price_cents, line.cost_price_at_time_cents, line.line_total_cents) == (9900, 3000, 19800)

    def test_default_method_is_cash(self, db_session, make_product):
        product = make_product()
        sale = sales_service.create_sale([{"product_id": product.id, "quantity": 1}])
        assert sale.payment_method == "dinheiro"

    def test_prices_are_frozen_at_sale_time(self, db_session, make_product):
        product = make_product(price_cents=10000, cost_price_cents=4000)
        sale = sales_service.create_sale([{"product_id": product.id, "quantity": 1}])

        p = _product(product.id)
        p.price_cents = 15000
        p.cost_price_cents = 6000
        db_session.commit()

        line = db_session.get(SaleLine, sale.lines[0].id)
        assert (line.unit_price_cents, line.cost_price_at_time_cents) == (10000, 4000)
        assert line.product_name == "Vestido Midi"

    def test_negotiated_price(self, db_session, make_product):
        product = make_product(price_cents=10000)
        sale = sales_service.create_sale([{"product_id": product.id, "quantity": 2, "unit_price": "85.50"}])
        assert sale.total_cents == 17100

    def test_sale_with_schedule(self, db_session, make_product):
        product = make_product(price_cents=25000)

        sale = sales_service.create_sale(
            [{"product_id": product.id, "quantity": 1}],
            payment_method="fiado_parcelado",
            num_installments=2,
            entry_payment_cents=5000,
            installment_start_date=date(2024, 5, 10),
        )

        rows = db_session.query(Installment).filter_by(sale_id=sale.id).order_by(Installment.installment_number).all()
        assert [(r.due_date, r.amount_due_cents) for r in rows] == [
            (date(2024, 6, 10), 10000),
            (date(2024, 7, 10), 10000),
        ]
        assert sale.status == "partial"
        assert sale.remaining_cents == 20000

    def test_cancel_direct_sale(self, db_session, credit_sale):
        product_id = credit_sale.lines[0].product_id
        assert _product(product_id).stock == 4

        sales_service.cancel_sale(credit_sale.id)

        assert _product(product_id).stock == 5
        db.session.expire_all()
        statuses = [i.status for i in db_session.get(Sale, credit_sale.id).installments]
        assert statuses == ["cancelled", "cancelled", "cancelled"]

    def test_cash_sale_can_be_cancelled(self, db_session, make_product):
        product = make_product(stock=3)
        sale = sales_service.create_sale([{"product_id": product.id, "quantity": 2}], payment_method="pix")
        assert sale.status == "paid"

        cancelled = sales_service.cancel_sale(sale.id, reason="troca")

        assert cancelled.status == "cancelled"
        assert cancelled.payment_status == "cancelled"
        assert _product(product.id).stock == 3

    def test_credit_sale_paid_off_is_final(self, db_session, credit_sale):
        installment_service.pay_full(credit_sale.id)

        with pytest.raises(InvalidStateTransition):
            sales_service.cancel_sale(credit_sale.id)
        assert _product(credit_sale.lines[0].product_id).stock == 4

    def test_cancel_twice(self, db_session, credit_sale):
        sales_service.cancel_sale(credit_sale.id)
        with pytest.raises(InvalidStateTransition):
            sales_service.cancel_sale(credit_sale.id)


class TestValidation:

    def test_items_required(self, db_session):
        with pytest.raises(ValidationError):
            sales_service.create_sale([])
        with pytest.raises(ValidationError):
            sales_service.create_sale("not a list")

    def test_unknown_item_field(self, db_session, make_product):
        product = make_product()
        with pytest.raises(ValidationError):
            sales_service.create_sale([{"product_id": product.id, "quantity": 1, "discount": 5}])

    def test_bad_quantity(self, db_session, make_product):
        product = make_product()
        with pytest.raises(InvalidQuantity):
            sales_service.create_sale([{"product_id": product.id, "quantity": 0}])

    def test_oversized_quantities_and_totals(self, db_session, make_product):
        product = make_product(price_cents=10000, stock=10)
        with pytest.raises(InvalidQuantity):
            sales_service.create_sale([{"product_id": product.id, "quantity": 10 ** 20}])
        with pytest.raises(InvalidAmount):
            sales_service.create_sale([{"product_id": product.id, "quantity": 200_000}])
        assert db_session.query(Sale).count() == 0

    def test_bad_type_and_method(self, db_session, make_product):
        product = make_product()
        items = [{"product_id": product.id, "quantity": 1}]
        with pytest.raises(ValidationError):
            sales_service.create_sale(items, sale_type="consignado")
        with pytest.raises(ValidationError):
            sales_service.create_sale(items, payment_method="cheque")

    def test_installments_need_credit_method(self, db_session, make_product):
        product = make_product()
        with pytest.raises(InvalidSchedule):
            sales_service.create_sale(
                [{"product_id": product.id, "quantity": 1}], payment_method="pix", num_installments=2
            )

    def test_entry_cannot_exceed_total(self, db_session, make_product):
        product = make_product(price_cents=5000)
        with pytest.raises(InvalidAmount):
            sales_service.create_sale(
                [{"product_id": product.id, "quantity": 1}], payment_method="fiado", entry_payment_cents=6000
            )

    def test_unknown_customer_and_product(self, db_session, make_product):
        product = make_product()
        with pytest.raises(NotFound):
            sales_service.create_sale([{"product_id": product.id, "quantity": 1}], customer_id=999999)
        with pytest.raises(NotFound):
            sales_service.create_sale([{"product_id": 999999, "quantity": 1}])

    def test_inactive_product(self, db_session, make_product):
        product = make_product(is_active=False)
        with pytest.raises(ValidationError):
            sales_service.create_sale([{"product_id": product.id, "quantity": 1}])

    def test_failed_line_rolls_back_whole_sale(self, db_session, make_product):
        plenty = make_product(name="Blusa", stock=10)
        scarce = make_product(name="Cinto", stock=1)

        with pytest.raises(InsufficientStock):
            sales_service.create_sale(
                [
                    {"product_id": plenty.id, "quantity": 2},
                    {"product_id": scarce.id, "quantity": 2},
                ],
                sale_type="malinha",
            )

        assert (_product(plenty.id).stock, _product(plenty.id).reserved) == (10, 0)
        assert db_session.query(Sale).count() == 0
        assert db_session.query(StockReservation).count() == 0


class TestVariantLines:
    """Lines naming a color/size move that variant and the product total together."""

    @pytest.fixture
    def blouse(self, db_session):
        return catalog_service.create_product({
            "name": "Blusa Seda",
            "price_cents": 12000,
            "variants": [
                {"color": "Off White", "size": "P", "stock": 2},
                {"color": "Off White", "size": "M", "stock": 2},
            ],
        })

    def _stock_by_size(self, product_id):
        db.session.expire_all()
        rows = db.session.query(ProductVariant).filter_by(product_id=product_id).all()
        return {v.size: (v.stock, v.reserved) for v in rows}

    def test_malinha_reserves_and_commits_the_variant(self, blouse, customer):
        sale = sales_service.create_sale(
            [{"product_id": blouse.id, "quantity": 2, "color": "off white", "size": "M"}],
            sale_type="malinha",
            customer_id=customer.id,
        )
        assert self._stock_by_size(blouse.id) == {"P": (2, 0), "M": (2, 2)}
        line = db.session.query(SaleLine).filter_by(sale_id=sale.id).one()
        assert line.variant_id is not None

        sales_service.confirm_sale(sale.id)
        assert self._stock_by_size(blouse.id) == {"P": (2, 0), "M": (0, 0)}
        assert (_product(blouse.id).stock, _product(blouse.id).reserved) == (2, 0)

        sales_service.cancel_sale(sale.id)
        assert self._stock_by_size(blouse.id) == {"P": (2, 0), "M": (2, 0)}
        assert _product(blouse.id).stock == 4

    def test_cancel_direct_sale_restocks_the_variant(self, blouse):
        sale = sales_service.create_sale(
            [{"product_id": blouse.id, "quantity": 1, "color": "Off White", "size": "P"}],
            payment_method="pix",
        )
        assert self._stock_by_size(blouse.id) == {"P": (1, 0), "M": (2, 0)}

        sales_service.cancel_sale(sale.id)

        assert self._stock_by_size(blouse.id) == {"P": (2, 0), "M": (2, 0)}

    def test_unknown_size_rolls_back_the_sale(self, blouse, make_product):
        plain = make_product(stock=3)
        with pytest.raises(ValidationError):
            sales_service.create_sale([
                {"product_id": plain.id, "quantity": 1},
                {"product_id": blouse.id, "quantity": 1, "color": "Off White", "size": "GG"},
            ])

        assert _product(plain.id).stock == 3
        assert db.session.query(Sale).count() == 0


class TestQueries:

    def test_get_and_list(self, db_session, make_product, customer):
        product = make_product(stock=10)
        first = sales_service.create_sale([{"product_id": product.id, "quantity": 1}], customer_id=customer.id)
        second = sales_service.create_sale([{"product_id": product.id, "quantity": 1}], sale_type="malinha")

        assert sales_service.get_sale(first.id).id == first.id
        assert [s.id for s in sales_service.list_sales(sale_type="malinha")] == [second.id]
        assert [s.id for s in sales_service.list_sales(customer_id=customer.id)] == [first.id]
        assert [s.id for s in sales_service.list_sales(status="pending")] == [second.id]
        assert len(sales_service.list_sales(limit=1)) == 1

        with pytest.raises(NotFound):
            sales_service.get_sale(999999)
