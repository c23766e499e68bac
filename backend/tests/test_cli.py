# Overview: Pytest coverage for Flask CLI commands.

from retail_pos.models import Category, Product, User

from conftest import cart_line


class TestSystemCommands:
    def test_init_is_idempotent(self, app, db_session):
        runner = app.test_cli_runner()

        first = runner.invoke(args=["system", "init"])
        second = runner.invoke(args=["system", "init"])

        assert first.exit_code == 0, first.output
        assert second.exit_code == 0, second.output
        assert db_session.query(Category).filter_by(name="General").count() == 1
        assert db_session.query(User).count() == 1


class TestProductCommands:
    def test_create_product(self, app, db_session, tmp_path):
        image = tmp_path / "shirt.png"
        image.write_bytes(b"\x89PNG\r\n\x1a\n")
        runner = app.test_cli_runner()

        result = runner.invoke(args=[
            "products", "create",
            "--name", "Ao thun",
            "--category", "Clothing",
            "--import-price", "80000",
            "--retail-price", "120000",
            "--quantity", "10",
            "--image", str(image),
        ])

        assert result.exit_code == 0, result.output
        product = db_session.query(Product).one()
        assert product.code in result.output
        assert product.images[0]["content_type"] == "image/png"
        assert product.in_stock is True

    def test_create_product_rejects_bad_price(self, app, db_session, tmp_path):
        image = tmp_path / "shirt.png"
        image.write_bytes(b"\x89PNG")
        result = app.test_cli_runner().invoke(args=[
            "products", "create",
            "--name", "Ao thun",
            "--import-price", "0",
            "--retail-price", "120000",
            "--quantity", "10",
            "--image", str(image),
        ])
        assert result.exit_code != 0
        assert db_session.query(Product).count() == 0


class TestInvoiceCommands:
    def _order_id(self, make_product, staff):
        from retail_pos.services.checkout_service import checkout

        product = make_product(quantity=5)
        return checkout(
            cart=[cart_line(product)],
            customer_phone="0901234567",
            customer_name="Nguyen Van A",
            customer_address="Ha Noi",
            amount_paid=500_000,
            employee_id=staff.id,
        ).order.id

    def test_missing_and_regenerate(self, app, db_session, make_product, staff, invoice_dir):
        order_id = self._order_id(make_product, staff)
        (invoice_dir / f"{order_id}.pdf").unlink()
        runner = app.test_cli_runner()

        listed = runner.invoke(args=["invoices", "missing"])
        assert listed.exit_code == 0
        assert str(order_id) in listed.output

        regenerated = runner.invoke(args=["invoices", "regenerate", str(order_id)])
        assert regenerated.exit_code == 0, regenerated.output
        assert (invoice_dir / f"{order_id}.pdf").is_file()

        assert "Every order has an invoice" in runner.invoke(args=["invoices", "missing"]).output

    def test_regenerate_unknown_order(self, app, db_session):
        result = app.test_cli_runner().invoke(args=["invoices", "regenerate", "999999"])
        assert result.exit_code != 0
