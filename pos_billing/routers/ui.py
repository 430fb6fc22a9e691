import json
from html import escape

from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse

router = APIRouter()

_PAGE = """<!doctype html>
<html lang='en'>
<head>
<meta charset='utf-8'/>
<meta name='viewport' content='width=device-width,initial-scale=1'/>
<title>__TITLE__</title>
<style>
 body{font-family: system-ui, Segoe UI, Arial; margin:18px}
 .grid{display:grid; grid-template-columns:1fr 1fr; gap:18px}
 fieldset{border:1px solid #ddd; padding:12px; border-radius:10px; margin-bottom:14px}
 label{display:inline-block; min-width:110px}
 input{padding:4px 6px}
 input[type=number]{width:90px}
 .row{margin:6px 0}
 .pill{display:inline-block; padding:2px 8px; border-radius:999px; background:#eee; margin-left:8px}
 .low{color:#b30000}
 .muted{color:#666; font-size:12px}
 table{width:100%; border-collapse:collapse}
 th,td{border-bottom:1px solid #eee; padding:6px; text-align:left}
 .totals div{display:flex; justify-content:space-between; margin:4px 0}
 .grand{font-weight:bold; font-size:18px}
 button{padding:6px 10px; border-radius:8px; border:1px solid #ccc; background:#f7f7f7; cursor:pointer}
 button:disabled{opacity:.5; cursor:not-allowed}
 ul.dd{list-style:none; margin:4px 0; padding:0; border:1px solid #ddd; border-radius:6px; max-height:200px; overflow:auto}
 ul.dd li{padding:4px 8px; cursor:pointer}
 ul.dd li:hover{background:#f2f2f2}
 pre{background:#111; color:#ddd; padding:10px; border-radius:8px; overflow:auto; max-height:200px}
</style>
</head>
<body>
<h1>POS Billing</h1>
<div class="grid">
 <div>
  <fieldset>
   <legend>Customer Details</legend>
   <div class="row"><input id="cq" placeholder="Search customer by name or phone..." oninput="findCustomers()"/>
     <button onclick="pickCustomer(null)">Guest</button></div>
   <ul id="cdd" class="dd"></ul>
   <div class="row"><span id="cust_badge" class="pill">Guest Customer</span></div>
  </fieldset>
  <fieldset>
   <legend>Add Items to Bill</legend>
   <div class="row"><input id="pq" placeholder="Search product by name..." oninput="findProducts()"/></div>
   <ul id="pdd" class="dd"></ul>
   <div class="row"><label>Selected</label><span id="prod_badge" class="pill">-</span></div>
   <div class="row"><label>Quantity</label><input id="qty" type="number" min="1" value="1"/></div>
   <div class="row"><button onclick="addItem()">Add to Bill</button></div>
  </fieldset>
 </div>
 <div>
  <fieldset>
   <legend>Current Bill</legend>
   <table><thead><tr><th>Item</th><th>Qty</th><th>Rate</th><th>Amount</th><th></th></tr></thead>
   <tbody id="lines"></tbody></table>
   <div class="totals">
     <div><span>Subtotal:</span><span id="subtotal">0.00</span></div>
     <div><span>Discount (%):</span><span id="discount">0</span></div>
     <div class="grand"><span>Grand Total:</span><span id="total">0.00</span></div>
   </div>
   <div class="row">
     <button id="btn_print" onclick="finalize('print')">Print Bill</button>
     <button id="btn_download" onclick="finalize('download')">Checkout &amp; Download</button>
     <button onclick="cancelBill()">Cancel</button>
   </div>
   <div class="muted">/billing/finalize</div>
  </fieldset>
 </div>
</div>
<h2>Console</h2>
<pre id="log"></pre>
<script>
const CUR = __CURRENCY__;
let PRODUCT = null;
const U = (id) => document.getElementById(id);
// Todo dato del catálogo entra como texto, nunca como HTML
function el(tag, text, cls){
  const n = document.createElement(tag);
  if(text !== undefined && text !== null){ n.textContent = String(text); }
  if(cls){ n.className = cls; }
  return n;
}
function fill(id, nodes, emptyNode){
  const box = U(id);
  box.replaceChildren(...(nodes.length ? nodes : (emptyNode ? [emptyNode] : [])));
}
const log = (m, cls="") => {
  const line = (cls ? "["+cls.toUpperCase()+"] " : "") + (typeof m==="string"? m: JSON.stringify(m,null,2)) + "\\n";
  U("log").textContent = line + U("log").textContent;
};
async function api(method, path, body){
  const r = await fetch(path, {method, headers:{"Content-Type":"application/json"}, body: body? JSON.stringify(body): undefined});
  const data = await r.json().catch(() => ({}));
  if(!r.ok){ throw new Error(data.detail || data.error || ("HTTP "+r.status)); }
  return data;
}
function render(st){
  const empty = el("tr"); const td = el("td", "Bill is empty"); td.colSpan = 5; empty.append(td);
  fill("lines", st.items.map(it => {
    const tr = el("tr");
    const btn = el("button", "x");
    btn.addEventListener("click", () => removeItem(it.productId));
    const act = el("td"); act.append(btn);
    tr.append(el("td", it.name), el("td", it.quantity),
              el("td", `${CUR} ${it.price.toFixed(2)}`), el("td", `${CUR} ${it.amount.toFixed(2)}`), act);
    return tr;
  }), empty);
  U("subtotal").textContent = `${CUR} ${st.bill.subtotal.toFixed(2)}`;
  U("discount").textContent = st.discount;
  U("total").textContent = `${CUR} ${st.bill.total.toFixed(2)}`;
  U("cust_badge").textContent = st.customer ? `${st.customer.name} (${st.discount}% discount)` : "Guest Customer";
  const off = st.isProcessing || st.items.length === 0;
  U("btn_print").disabled = off; U("btn_download").disabled = off;
}
async function refresh(){ render(await api("GET", "/billing")); }
async function findCustomers(){
  const q = encodeURIComponent(U("cq").value);
  const rows = await api("GET", `/billing/customers?q=${q}`);
  fill("cdd", rows.map(c => {
    const li = el("li", c.name);
    li.append(" ", el("span", c.phone, "muted"));
    if(c.discountPercentage > 0){ li.append(" ", el("b", `${c.discountPercentage}% OFF`)); }
    li.addEventListener("click", () => pickCustomer(c.id));
    return li;
  }), el("li", "No customers found", "muted"));
}
async function pickCustomer(id){
  try{ render(await api("POST", "/billing/customer", {customerId: id})); fill("cdd", []); }
  catch(e){ log(e.message, "err"); }
}
async function findProducts(){
  const q = encodeURIComponent(U("pq").value);
  const rows = await api("GET", `/billing/products?q=${q}`);
  fill("pdd", rows.map(p => {
    const li = el("li", `${p.name} - ${CUR} ${p.price}`);
    li.append(" ", el("span", `Stock: ${p.stock}${p.lowStock ? " (Low Stock)" : ""}`, p.lowStock ? "low" : "muted"));
    li.addEventListener("click", () => pickProduct(p.id, p.name));
    return li;
  }), el("li", "No products found", "muted"));
}
function pickProduct(id, name){ PRODUCT = id; U("prod_badge").textContent = name; fill("pdd", []); }
async function addItem(){
  if(!PRODUCT){ return log("Please select a product", "warn"); }
  try{
    render(await api("POST", "/billing/items", {productId: PRODUCT, quantity: parseInt(U("qty").value || "0")}));
    PRODUCT = null; U("prod_badge").textContent = "-"; U("qty").value = 1; U("pq").value = "";
  }catch(e){ log(e.message, "err"); }
}
async function removeItem(id){
  try{ const st = await api("DELETE", `/billing/items/${encodeURIComponent(id)}`); render(st); if(st.removed) log(`${st.removed} removed from bill`); }
  catch(e){ log(e.message, "err"); }
}
async function cancelBill(){ render(await api("POST", "/billing/cancel")); }
async function finalize(action){
  U("btn_print").disabled = true; U("btn_download").disabled = true;
  try{
    const out = await api("POST", "/billing/finalize", {action});
    log(out, "ok");
    const url = `/billing/invoices/${out.billNo}`;
    if(action === "print"){ window.open(url, "_blank"); }
    else { const a = document.createElement("a"); a.href = url; a.download = out.artifact.filename; a.click(); }
  }catch(e){ log(e.message, "err"); }
  await refresh();
}
refresh().catch(e => log(e.message, "err"));
</script>
</body>
</html>
"""


@router.get("/", response_class=HTMLResponse)
def home(request: Request):
    s = request.app.state.settings
    return _PAGE.replace("__TITLE__", escape(s.app_name)).replace("__CURRENCY__", json.dumps(s.currency))
