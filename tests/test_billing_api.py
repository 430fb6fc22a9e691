import json

from sqlalchemy import text

from pos_billing.utils.atomic_file import read_jsonl


def _post(client, path, payload=None, idem=None):
    headers = {"Idempotency-Key": idem} if idem else {}
    r = client.post(path, json=payload or {}, headers=headers)
    return r.status_code, r.json()


def _catalog_stock(client):
    return {p["id"]: p["stock"] for p in client.get("/billing/products").json()}


def test_initial_state_is_empty(client):
    r = client.get("/billing")
    assert r.status_code == 200, r.text
    st = r.json()
    assert st["items"] == []
    assert st["customer"] is None
    assert st["bill"] == {"subtotal": 0, "discountPercent": 0, "discountAmount": 0, "total": 0}
    assert st["isProcessing"] is False


def test_products_carry_low_stock_flag_and_filter(client):
    rows = client.get("/billing/products").json()
    assert [(p["name"], p["lowStock"]) for p in rows] == [
        ("Product A", False), ("Product B", True), ("Widget", True)]
    rows = client.get("/billing/products", params={"q": "wid"}).json()
    assert [p["id"] for p in rows] == ["3"]
    rows = client.get("/billing/customers", params={"q": "asha"}).json()
    assert rows[0]["discountPercentage"] == 10


def test_cart_flow_and_totals(client):
    # 1) cliente con 10%
    st, js = _post(client, "/billing/customer", {"customerId": "1"})
    assert st == 200 and js["discount"] == 10
    # 2) líneas
    _post(client, "/billing/items", {"productId": "1", "quantity": 1})
    _post(client, "/billing/items", {"productId": "2", "quantity": 1})
    st, js = _post(client, "/billing/items", {"productId": "1", "quantity": 1})
    assert st == 200
    assert [(i["productId"], i["quantity"]) for i in js["items"]] == [("1", 2), ("2", 1)]
    assert js["bill"] == {"subtotal": 250, "discountPercent": 10, "discountAmount": 25, "total": 225}

    # 3) quitar cliente => descuento a 0, líneas intactas
    st, js = _post(client, "/billing/customer", {"customerId": None})
    assert js["discount"] == 0 and len(js["items"]) == 2
    assert js["bill"]["total"] == 250


def test_stock_error_payload(client):
    _post(client, "/billing/items", {"productId": "2", "quantity": 4})
    st, js = _post(client, "/billing/items", {"productId": "2", "quantity": 2})
    assert st == 409
    assert js["error"] == "insufficient_stock"
    assert (js["available"], js["inCart"], js["requested"]) == (5, 4, 6)
    assert client.get("/billing").json()["items"][0]["quantity"] == 4


def test_validation_and_not_found(client):
    st, js = _post(client, "/billing/items", {"productId": "1", "quantity": 0})
    assert st == 422 and js["error"] == "validation_error"
    st, js = _post(client, "/billing/items", {"productId": "999", "quantity": 1})
    assert st == 404 and js["error"] == "not_found"
    st, js = _post(client, "/billing/customer", {"customerId": "999"})
    assert st == 404


def test_remove_item_is_idempotent(client):
    _post(client, "/billing/items", {"productId": "1", "quantity": 1})
    _post(client, "/billing/items", {"productId": "3", "quantity": 1})
    r = client.delete("/billing/items/1")
    assert r.status_code == 200 and r.json()["removed"] == "Product A"
    r = client.delete("/billing/items/1")
    assert r.status_code == 200 and r.json()["removed"] is None
    assert [i["productId"] for i in r.json()["items"]] == ["3"]


def test_finalize_empty_cart(client):
    st, js = _post(client, "/billing/finalize", {"action": "print"})
    assert st == 409 and js["error"] == "empty_cart"


def test_finalize_download_end_to_end(client, journal_file):
    _post(client, "/billing/customer", {"customerId": "1"})
    _post(client, "/billing/items", {"productId": "1", "quantity": 2})
    _post(client, "/billing/items", {"productId": "2", "quantity": 1})

    st, out = _post(client, "/billing/finalize", {"action": "download"})
    assert st == 200, out
    assert out["billNo"].startswith("INV-")
    assert out["bill"]["total"] == 225
    assert out["artifact"]["filename"].startswith("bill_")
    assert "content" not in out["artifact"]

    st = client.get("/billing").json()
    assert st["items"] == [] and st["discount"] == 0 and st["customer"] is None
    assert _catalog_stock(client) == {"1": 8, "2": 4, "3": 5}

    r = client.get(f"/billing/invoices/{out['billNo']}")
    assert r.status_code == 200
    assert "attachment" in r.headers["content-disposition"]
    assert "Grand Total:" in r.text and "INR 225.00" in r.text and "Asha Rao" in r.text

    lines = [json.loads(ln) for ln in journal_file.read_text(encoding="utf-8").splitlines()]
    assert len(lines) == 1
    assert lines[0]["bill_no"] == out["billNo"] and lines[0]["total"] == 225


def test_finalize_print_returns_printable_page(client):
    _post(client, "/billing/items", {"productId": "3", "quantity": 1})
    st, out = _post(client, "/billing/finalize", {"action": "print"})
    assert st == 200
    r = client.get(f"/billing/invoices/{out['billNo']}")
    assert r.status_code == 200
    assert "window.print()" in r.text
    assert "Guest Customer" in r.text


def test_stale_stock_rejection_preserves_cart(client, catalog_app):
    _post(client, "/billing/customer", {"customerId": "1"})
    _post(client, "/billing/items", {"productId": "2", "quantity": 3})
    # otra caja vende producto B mientras tanto
    with catalog_app.state.engine.begin() as conn:
        conn.execute(text("UPDATE product SET stock = 1 WHERE id = 2"))

    st, js = _post(client, "/billing/finalize", {"action": "print"})
    assert st == 502
    assert js["error"] == "finalization_failed"
    assert "Insufficient stock" in js["detail"]

    state = client.get("/billing").json()
    assert [(i["productId"], i["quantity"]) for i in state["items"]] == [("2", 3)]
    assert state["discount"] == 10
    assert state["isProcessing"] is False


def test_idempotent_finalize_replays(client, journal_file):
    _post(client, "/billing/items", {"productId": "1", "quantity": 1})
    st1, first = _post(client, "/billing/finalize", {"action": "print"}, idem="bill-001")
    st2, second = _post(client, "/billing/finalize", {"action": "print"}, idem="bill-001")
    assert st1 == 200 and st2 == 200
    assert second["billNo"] == first["billNo"]
    assert second.get("replay") is True
    assert _catalog_stock(client)["1"] == 9
    assert len(journal_file.read_text(encoding="utf-8").splitlines()) == 1


def test_colliding_bill_numbers_are_journaled_separately(client, session, journal_file):
    numbers = iter(["INV-04242", "INV-04242", "INV-00007"])
    session.finalizer.bill_no_factory = lambda: next(numbers)

    _post(client, "/billing/items", {"productId": "1", "quantity": 1})
    st1, first = _post(client, "/billing/finalize", {"action": "print"})
    _post(client, "/billing/items", {"productId": "2", "quantity": 1})
    st2, second = _post(client, "/billing/finalize", {"action": "print"})

    assert st1 == 200 and st2 == 200
    assert first["billNo"] != second["billNo"]
    assert first["saleId"] != second["saleId"]
    rows = read_jsonl(journal_file)
    assert [r["sale_id"] for r in rows] == [first["saleId"], second["saleId"]]
    assert set(session.invoices) == {first["billNo"], second["billNo"]}
    assert client.get(f"/billing/invoices/{first['billNo']}").status_code == 200


def test_render_failure_then_rerender(client, session, tmp_path):
    blocked = tmp_path / "blocked"
    blocked.write_text("not a directory")
    good_dir = session.renderer.invoice_dir
    session.renderer.invoice_dir = str(blocked / "invoices")

    _post(client, "/billing/items", {"productId": "1", "quantity": 1})
    st, js = _post(client, "/billing/finalize", {"action": "download"})
    assert st == 500
    assert js["error"] == "render_failed" and js["saleRecorded"] is True
    bill_no = js["billNo"]
    # la venta quedó registrada
    assert _catalog_stock(client)["1"] == 9
    assert client.get("/billing").json()["items"] == []
    assert client.get(f"/billing/invoices/{bill_no}").status_code == 404

    session.renderer.invoice_dir = good_dir
    st, js = _post(client, f"/billing/invoices/{bill_no}/render")
    assert st == 200, js
    assert js["artifact"]["action"] == "download"
    assert _catalog_stock(client)["1"] == 9
    assert client.get(f"/billing/invoices/{bill_no}").status_code == 200


def test_cancel_clears_everything(client):
    _post(client, "/billing/customer", {"customerId": "1"})
    _post(client, "/billing/items", {"productId": "1", "quantity": 1})
    st, js = _post(client, "/billing/cancel")
    assert st == 200
    assert js["items"] == [] and js["discount"] == 0 and js["customer"] is None


def test_refresh_endpoint(client):
    st, js = _post(client, "/billing/refresh")
    assert st == 200
    assert js == {"ok": True, "stale": False, "products": 3, "customers": 2}
