from .api import create_catalog_app

# uvicorn pos_billing.catalog_stub.main:app --port 5000
app = create_catalog_app(with_demo_data=True)
