"""
mock_order_api.py — Mock Implementation of the Order-Management API (REST)

This module provides a simulated order-management backend for the storefront.
It keeps all state in memory and mimics the endpoints the checkout relies on.

Simulation Scenarios:
    • Paginated, filterable product catalog
    • Saved account address for checkout prefill
    • Payment token issuance bound to a basket total
    • Idempotent order creation (same Idempotency-Key → same order number)
    • Transient outages (HTTP 503) for the next N order requests
    • Order rejection (HTTP 400) when the shipping name starts with "REJECT"

Endpoints (all under /api):
    GET  /products, /products/filters, /products/{id}
    GET  /account/address
    GET  /basket
    POST /payments
    POST /orders

Port:
    Default: 5000 (HTTP)
"""

import logging
import math
import uuid
from typing import Any, Dict, Optional

from fastapi import APIRouter, FastAPI, Header, HTTPException, Response
from pydantic import BaseModel

app = FastAPI(title="Mock Order API")
router = APIRouter(prefix="/api")
logging.basicConfig(level=logging.INFO)

PRODUCTS = [
    {"id": 1, "name": "Angular Speedster Board 2000", "price": 20000, "type": "Boards", "brand": "Angular", "quantityInStock": 100},
    {"id": 2, "name": "Green Angular Board 3000", "price": 15000, "type": "Boards", "brand": "Angular", "quantityInStock": 100},
    {"id": 3, "name": "Core Board Speed Rush 3", "price": 18000, "type": "Boards", "brand": "NetCore", "quantityInStock": 100},
    {"id": 4, "name": "Net Core Super Board", "price": 30000, "type": "Boards", "brand": "NetCore", "quantityInStock": 100},
    {"id": 5, "name": "React Board Super Whizzy Fast", "price": 25000, "type": "Boards", "brand": "React", "quantityInStock": 100},
    {"id": 6, "name": "Typescript Entry Board", "price": 12000, "type": "Boards", "brand": "TypeScript", "quantityInStock": 100},
    {"id": 7, "name": "Core Blue Hat", "price": 1000, "type": "Hats", "brand": "NetCore", "quantityInStock": 100},
    {"id": 8, "name": "Green React Woolen Hat", "price": 8000, "type": "Hats", "brand": "React", "quantityInStock": 100},
    {"id": 9, "name": "Purple React Woolen Hat", "price": 1500, "type": "Hats", "brand": "React", "quantityInStock": 100},
    {"id": 10, "name": "Blue Code Gloves", "price": 1800, "type": "Gloves", "brand": "VS Code", "quantityInStock": 100},
]


class OrderApiState:
    """In-memory backend state; `reset()` restores the defaults."""

    def __init__(self):
        self.reset()

    def reset(self):
        self.address: Optional[Dict[str, Any]] = {
            "fullName": "Max Mustermann", "address1": "Testweg 1", "address2": None,
            "city": "Berlin", "state": "BE", "zip": "10115", "country": "DE",
        }
        self.basket: Optional[Dict[str, Any]] = None
        self.orders: Dict[int, Dict[str, Any]] = {}
        self.orders_by_key: Dict[str, int] = {}
        self.next_order_number = 1
        self.fail_next_orders = 0
        self.order_requests = 0


state = OrderApiState()


def _require_auth(authorization: Optional[str]):
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing bearer token.")


@router.get("/products")
def list_products(pageNumber: int = 1, pageSize: int = 6, orderBy: str = "name",
                  searchTerm: Optional[str] = None, brands: Optional[str] = None,
                  types: Optional[str] = None):
    """
    Returns one page of products plus pagination metadata.

    Behavior:
        - orderBy: "name" (default), "price", "priceDesc"
        - brands/types: comma-separated filters
        - searchTerm: case-insensitive substring of the name
    """
    products = list(PRODUCTS)
    if searchTerm:
        products = [p for p in products if searchTerm.lower() in p["name"].lower()]
    if brands:
        wanted = {b.strip().lower() for b in brands.split(",")}
        products = [p for p in products if p["brand"].lower() in wanted]
    if types:
        wanted = {t.strip().lower() for t in types.split(",")}
        products = [p for p in products if p["type"].lower() in wanted]

    if orderBy == "price":
        products.sort(key=lambda p: p["price"])
    elif orderBy == "priceDesc":
        products.sort(key=lambda p: p["price"], reverse=True)
    else:
        products.sort(key=lambda p: p["name"])

    total = len(products)
    start = (pageNumber - 1) * pageSize
    return {
        "items": products[start:start + pageSize],
        "metaData": {
            "currentPage": pageNumber,
            "pageSize": pageSize,
            "totalCount": total,
            "totalPages": math.ceil(total / pageSize) if pageSize else 0,
        },
    }


@router.get("/products/filters")
def product_filters():
    return {
        "brands": sorted({p["brand"] for p in PRODUCTS}),
        "types": sorted({p["type"] for p in PRODUCTS}),
    }


@router.get("/products/{product_id}")
def product_details(product_id: int):
    for product in PRODUCTS:
        if product["id"] == product_id:
            return product
    raise HTTPException(status_code=404, detail="Product not found.")


@router.get("/account/address")
def fetch_address(authorization: Optional[str] = Header(None)):
    _require_auth(authorization)
    if state.address is None:
        return Response(status_code=204)
    return state.address


@router.get("/basket")
def fetch_basket():
    if state.basket is None:
        return Response(status_code=204)
    return state.basket


class PaymentTokenRequest(BaseModel):
    basketId: Optional[str] = None
    amount: int


@router.post("/payments")
def issue_payment_token(request: PaymentTokenRequest):
    """
    Issues a fresh client secret bound to the given amount.

    Returns:
        dict: basketId (assigned if absent) and paymentToken.
    """
    basket_id = request.basketId or f"bsk_{uuid.uuid4().hex[:12]}"
    token = f"pi_{uuid.uuid4().hex[:16]}_secret_{request.amount}"
    logging.info(f"[OA] Payment token issued for basket {basket_id} ({request.amount} cents).")
    return {"basketId": basket_id, "paymentToken": token}


class CreateOrderRequest(BaseModel):
    saveAddress: bool = False
    shippingAddress: Dict[str, Any]


@router.post("/orders", status_code=201)
def create_order(
        request: CreateOrderRequest,
        idempotency_key: str = Header(..., alias="Idempotency-Key"),
        authorization: Optional[str] = Header(None)
):
    """
    Creates an order and returns its number.

    The same Idempotency-Key always yields the same order number, so retried
    requests never create a second order.

    Raises:
        HTTPException(401): Missing bearer token.
        HTTPException(503): Simulated outage (while fail_next_orders > 0).
        HTTPException(400): Shipping name starts with "REJECT".
    """
    _require_auth(authorization)
    state.order_requests += 1

    if state.fail_next_orders > 0:
        state.fail_next_orders -= 1
        logging.warning(f"[OA] Simulated outage for order request (key {idempotency_key[:12]}).")
        raise HTTPException(status_code=503, detail="Service unavailable.")

    if idempotency_key in state.orders_by_key:
        order_number = state.orders_by_key[idempotency_key]
        logging.info(f"[OA] Duplicate order request, returning #{order_number}.")
        return order_number

    if str(request.shippingAddress.get("fullName", "")).startswith("REJECT"):
        raise HTTPException(status_code=400, detail="Order could not be created.")

    order_number = state.next_order_number
    state.next_order_number += 1
    state.orders[order_number] = request.model_dump()
    state.orders_by_key[idempotency_key] = order_number
    if request.saveAddress:
        state.address = dict(request.shippingAddress)
    state.basket = None
    logging.info(f"[OA] Order #{order_number} created.")
    return order_number


app.include_router(router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=5000)
