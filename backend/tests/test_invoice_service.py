# Overview: Pytest coverage for invoice layout, rendering, storage and retrieval.

import io
from datetime import datetime

import pytest
from retail_pos.models import Customer, Order, OrderLine
from retail_pos.money_utils import format_money, group_thousands
from retail_pos.services import invoice_service
from retail_pos.services.checkout_service import checkout
from retail_pos.services.invoice_service import (
    TABLE_HEADER,
    InvoiceLayout,
    InvoiceNotFound,
    OrderNotFound,
    RenderError,
    StorageError,
    build_invoice_layout,
    generate_invoice,
    get_invoice_path,
    orders_missing_invoice,
    render_pdf,
)
from retail_pos.time_utils import utcnow

from conftest import cart_line


@pytest.fixture
def order(db_session, make_product, staff):
    shirt = make_product(name="Ao thun", retail_price=120_000, quantity=10)
    jeans = make_product(name="Quan jean", retail_price=350_000, quantity=10)
    result = checkout(
        cart=[cart_line(shirt, 2), cart_line(jeans, 1)],
        customer_phone="0901234567",
        customer_name="Nguyen Van A",
        customer_address="12 Hang Bac, Ha Noi",
        amount_paid=600_000,
        employee_id=staff.id,
    )
    return result.order


class TestMoneyFormat:
    def test_vietnamese_grouping(self):
        assert group_thousands(1234567) == "1.234.567"
        assert group_thousands(500) == "500"

    def test_suffix(self, db_session):
        assert format_money(590_000) == "590.000 VND"
        assert format_money(0, suffix="") == "0"


class TestInvoiceLayout:
    def test_layout_fields(self, db_session, order, staff):
        order.created_at = datetime(2026, 10, 19, 3, 4, 5)
        db_session.commit()

        layout = build_invoice_layout(order)

        assert layout.title == "SALES INVOICE"
        assert layout.store_name == "Test Store"
        assert dict(layout.metadata) == {
            "Order ID": str(order.id),
            # Asia/Ho_Chi_Minh is UTC+7
            "Created at": "10:04:05 19/10/2026",
            "Total": "590.000 VND",
            "Amount paid": "600.000 VND",
            "Change": "10.000 VND",
        }
        assert dict(layout.customer) == {
            "Name": "Nguyen Van A",
            "Phone": "0901234567",
            "Address": "12 Hang Bac, Ha Noi",
        }
        assert dict(layout.employee) == {"Employee ID": str(staff.id), "Name": "Tran Thi B"}
        assert layout.table_header == TABLE_HEADER
        assert layout.rows[0] == ("1", order.lines[0].product.code, "Ao thun", "2", "120.000 VND", "240.000 VND")
        assert layout.rows[1][2:] == ("Quan jean", "1", "350.000 VND", "350.000 VND")

    def test_layout_is_deterministic(self, db_session, order):
        assert build_invoice_layout(order) == build_invoice_layout(order)

    def test_unknown_employee_renders_blank(self, db_session, make_product):
        product = make_product(quantity=5)
        result = checkout(
            cart=[cart_line(product)],
            customer_phone="0901234567",
            customer_name="Nguyen Van A",
            customer_address="Ha Noi",
            amount_paid=500_000,
            employee_id=987654,
        )
        layout = build_invoice_layout(result.order)
        assert dict(layout.employee) == {"Employee ID": "", "Name": ""}

    def test_missing_customer_raises(self, db_session):
        order = Order(id=1, total_price=0, amount_paid=0, change=0, created_at=utcnow())
        with pytest.raises(RenderError) as exc:
            build_invoice_layout(order)
        assert exc.value.details["field"] == "customer"

    def test_missing_product_code_raises(self, db_session):
        order = Order(
            id=1,
            customer=Customer(phone="0901234567", name="A", address="B"),
            total_price=10,
            amount_paid=10,
            change=0,
            created_at=utcnow(),
            lines=[OrderLine(position=1, name="Orphan", quantity=1, unit_price=10, total=10)],
        )
        with pytest.raises(RenderError) as exc:
            build_invoice_layout(order)
        assert "product code" in exc.value.details["field"]


class TestRenderPdf:
    def test_many_rows_and_long_names_render(self, db_session):
        long_name = "Ao khoac gio hai lop chong nuoc phan quang " * 6
        layout = InvoiceLayout(
            order_id=7,
            title="SALES INVOICE",
            store_name="Test Store",
            metadata=(("Order ID", "7"),),
            customer=(("Name", "A"),),
            employee=(("Employee ID", ""), ("Name", "")),
            table_header=TABLE_HEADER,
            rows=tuple(
                (str(i), f"191026{i:05d}", long_name if i % 10 == 0 else "Ao thun", "1", "1.000 VND", "1.000 VND")
                for i in range(1, 151)
            ),
            closing="Thank you for shopping with us!",
        )
        buffer = io.BytesIO()
        render_pdf(layout, buffer)
        assert buffer.getvalue().startswith(b"%PDF")

    def test_bad_font_path_is_render_error(self, app, db_session, order, monkeypatch):
        monkeypatch.setitem(app.config, "INVOICE_FONT_PATH", "/nonexistent/font.ttf")
        with pytest.raises(RenderError):
            generate_invoice(order.id)


class TestGenerateInvoice:
    def test_checkout_stores_invoice(self, db_session, order, invoice_dir):
        path = get_invoice_path(order.id)
        assert path == invoice_dir / f"{order.id}.pdf"
        assert path.read_bytes().startswith(b"%PDF")

    def test_regeneration_replaces_file(self, db_session, order, invoice_dir):
        first = generate_invoice(order.id)
        second = generate_invoice(order.id)
        assert first == second
        # No temporary files left behind
        assert sorted(p.name for p in invoice_dir.iterdir()) == [f"{order.id}.pdf"]

    def test_unknown_order(self, db_session):
        with pytest.raises(OrderNotFound):
            generate_invoice(999999)

    def test_unwritable_directory_is_storage_error(self, app, db_session, order, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("x")
        app.config["INVOICE_DIR"] = str(blocker / "sub")
        with pytest.raises(StorageError) as exc:
            generate_invoice(order.id)
        assert exc.value.details["order_id"] == order.id

    def test_layout_failure_is_render_error(self, db_session, order, monkeypatch):
        def broken(order):
            raise KeyError("customer")

        monkeypatch.setattr(invoice_service, "build_invoice_layout", broken)
        with pytest.raises(RenderError) as exc:
            generate_invoice(order.id)
        assert exc.value.details["order_id"] == order.id
        assert "KeyError" in exc.value.details["reason"]

    def test_unknown_store_timezone_is_render_error(self, app, db_session, order, monkeypatch):
        monkeypatch.setitem(app.config, "STORE_TIMEZONE", "Mars/Olympus")
        with pytest.raises(RenderError):
            generate_invoice(order.id)


class TestInvoiceRetrieval:
    def test_missing_document(self, db_session, order, invoice_dir):
        (invoice_dir / f"{order.id}.pdf").unlink()
        with pytest.raises(InvoiceNotFound):
            get_invoice_path(order.id)

    def test_orders_missing_invoice(self, db_session, order, invoice_dir):
        assert orders_missing_invoice() == []
        (invoice_dir / f"{order.id}.pdf").unlink()
        assert orders_missing_invoice() == [order.id]
