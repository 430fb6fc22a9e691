import pytest
from fastapi.testclient import TestClient

from pos_billing.catalog_stub.api import create_catalog_app, seed
from pos_billing.core.schemas import Customer, InvoiceArtifact, Product
from pos_billing.main import create_app
from pos_billing.services.billing import BillingSession
from pos_billing.services.catalog import CatalogGateway, GatewayResult
from pos_billing.services.invoice import InvoiceRenderer

# ids 1..3 / 1..2 en el catálogo de desarrollo
STUB_PRODUCTS = [
    {"name": "Product A", "price": 100.0, "stock": 10},
    {"name": "Product B", "price": 50.0, "stock": 5},
    {"name": "Widget", "price": 20.0, "stock": 5},
]
STUB_CUSTOMERS = [
    {"name": "Asha Rao", "phone": "9876543210", "discount_percentage": 10.0},
    {"name": "Guest Regular", "phone": "9000000000", "discount_percentage": 0.0},
]


class FakeGateway:
    """Catálogo en memoria con el mismo contrato que CatalogGateway."""

    base_url = "fake://catalog"

    def __init__(self, products, customers=()):
        self.products = {p.id: p for p in products}
        self.customers = list(customers)
        self.calls = []
        self.fail_reads = False
        self.fail_commit = None
        self.on_commit = None

    def fetch_products(self):
        self.calls.append("fetch_products")
        if self.fail_reads:
            return GatewayResult.failure("catalog down")
        return GatewayResult.success([p.model_copy() for p in self.products.values()], 200)

    def fetch_customers(self):
        self.calls.append("fetch_customers")
        if self.fail_reads:
            return GatewayResult.failure("catalog down")
        return GatewayResult.success([c.model_copy() for c in self.customers], 200)

    def update_stock(self, items):
        self.calls.append(("update_stock", [(it.product_id, it.quantity) for it in items]))
        if self.on_commit:
            self.on_commit()
        if self.fail_commit:
            return GatewayResult.failure(self.fail_commit, 400)
        for it in items:
            p = self.products[it.product_id]
            self.products[it.product_id] = p.model_copy(update={"stock": p.stock - it.quantity})
        return GatewayResult.success({"message": "Stock updated successfully"}, 200)


class FakeRenderer:
    def __init__(self, fail=False):
        self.fail = fail
        self.calls = []

    def render(self, invoice, action):
        self.calls.append((invoice.bill_no, action))
        if self.fail:
            raise OSError("disk full")
        return InvoiceArtifact(action=action, filename=f"{invoice.bill_no}.html", content="<html/>")


@pytest.fixture
def products():
    return [
        Product(id="A", name="Product A", price=100, stock=10),
        Product(id="B", name="Product B", price=50, stock=5),
        Product(id="C", name="Widget", price=20, stock=5),
    ]


@pytest.fixture
def customers():
    return [Customer(id="c1", name="Asha Rao", phone="9876543210", discount_percentage=10)]


@pytest.fixture
def fake_gateway(products, customers):
    return FakeGateway(products, customers)


@pytest.fixture
def fake_renderer():
    return FakeRenderer()


@pytest.fixture
def fake_session(fake_gateway, fake_renderer):
    s = BillingSession(fake_gateway, fake_renderer, low_stock_threshold=5)
    assert s.load()
    fake_gateway.calls.clear()
    return s


# ====== catálogo de desarrollo (SQLAlchemy en memoria) ======
@pytest.fixture
def catalog_app():
    app = create_catalog_app("sqlite://")
    seed(app.state.SessionLocal, products=STUB_PRODUCTS, customers=STUB_CUSTOMERS)
    return app


@pytest.fixture
def catalog_client(catalog_app):
    return TestClient(catalog_app)


@pytest.fixture
def gateway(catalog_client):
    return CatalogGateway(base_url="http://testserver", http=catalog_client, timeout=5)


@pytest.fixture
def renderer(tmp_path):
    return InvoiceRenderer(invoice_dir=str(tmp_path / "invoices"), currency="INR", title="BILLING SYSTEM")


@pytest.fixture
def session(gateway, renderer):
    s = BillingSession(gateway, renderer, low_stock_threshold=5)
    assert s.load()
    return s


@pytest.fixture
def journal_file(tmp_path):
    return tmp_path / "sales_journal.jsonl"


@pytest.fixture
def client(session, journal_file):
    app = create_app(session, journal_file=str(journal_file), load_catalog=False)
    with TestClient(app) as c:
        yield c
