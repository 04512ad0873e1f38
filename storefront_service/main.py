"""
main.py — FastAPI Entry Point for the Storefront Service

This module exposes the storefront's client state and the checkout workflow over HTTP
for the web front end. One StorefrontSession (basket, catalog, checkout sessions) lives
per process.

Responsibilities:
    • Serve the catalog list, product details and filters from the catalog cache
    • Mutate the basket through the basket store
    • Drive checkout sessions (begin, submit step, back, retry, abandon)
    • Provide system health information
"""

from typing import Any, Dict, List, Optional

import httpx
from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from .clients import OrderApiClient, PaymentProviderClient
from .errors import BasketSyncError, CheckoutInProgressError
from .logging_config import get_logger, setup_logging
from .session import StorefrontSession
from .steps import CardInput

setup_logging()
log = get_logger(__name__)
app = FastAPI(title="Storefront Checkout Service")


class AddItemRequest(BaseModel):
    productId: int
    unitPrice: int = Field(..., ge=0)
    quantity: int = Field(1, gt=0)
    name: Optional[str] = None


class QuantityRequest(BaseModel):
    quantity: int = Field(..., ge=0)


class ProductParamsRequest(BaseModel):
    orderBy: Optional[str] = None
    searchTerm: Optional[str] = None
    brands: Optional[List[str]] = None
    types: Optional[List[str]] = None


class StepSubmission(BaseModel):
    data: Dict[str, Any] = Field(default_factory=dict)
    card: Optional[CardInput] = None


def get_session() -> StorefrontSession:
    session = getattr(app.state, "storefront", None)
    if session is None:
        raise HTTPException(status_code=503, detail="Storefront session not initialized.")
    return session


def get_checkout(session_id: str):
    checkout = get_session().get_checkout(session_id)
    if checkout is None or checkout.state is None:
        raise HTTPException(status_code=404, detail="Unknown checkout session.")
    return checkout


@app.on_event("startup")
def on_startup():
    """
    FastAPI startup event handler.

    Creates the process-wide storefront session with its HTTP clients, unless
    one has already been installed (tests inject a session wired to mocks).
    """
    log.info("Storefront service starting...")
    if getattr(app.state, "storefront", None) is None:
        app.state.storefront = StorefrontSession(OrderApiClient(), PaymentProviderClient())
    log.info("Storefront session ready.")


@app.on_event("shutdown")
async def on_shutdown():
    session = getattr(app.state, "storefront", None)
    if session is not None:
        await session.aclose()


# --- Catalog ---
@app.get("/catalog/products")
async def list_products(pageNumber: Optional[int] = None):
    """
    Returns the current product page, refetching when the cache is stale.

    Args:
        pageNumber (Optional[int]): Switches page before rendering.

    Returns:
        dict: items and metaData of the current page.

    Raises:
        HTTPException(502): If the catalog could not be fetched.
    """
    session = get_session()
    if pageNumber is not None and pageNumber != session.catalog.product_params.pageNumber:
        session.catalog.set_page_number(pageNumber)
    try:
        items, meta_data = await session.catalog_service.products_for_render()
    except httpx.HTTPError:
        raise HTTPException(status_code=502, detail="Catalog currently unavailable.")
    return {"items": [item.model_dump() for item in items], "metaData": meta_data.model_dump()}


@app.put("/catalog/params")
def set_product_params(params: ProductParamsRequest):
    session = get_session()
    session.catalog.set_product_params(**params.model_dump(exclude_none=True))
    return session.catalog.product_params.model_dump()


@app.delete("/catalog/params")
def reset_product_params():
    session = get_session()
    session.catalog.reset_product_params()
    session.catalog.mark_stale()
    return session.catalog.product_params.model_dump()


@app.get("/catalog/products/{product_id}")
async def product_details(product_id: int):
    try:
        product = await get_session().catalog_service.fetch_product(product_id)
    except httpx.HTTPStatusError as e:
        if e.response.status_code == 404:
            raise HTTPException(status_code=404, detail="Product not found.")
        raise HTTPException(status_code=502, detail="Catalog currently unavailable.")
    except httpx.HTTPError:
        raise HTTPException(status_code=502, detail="Catalog currently unavailable.")
    return product.model_dump()


@app.get("/catalog/filters")
async def product_filters():
    try:
        brands, types = await get_session().catalog_service.fetch_filters()
    except httpx.HTTPError:
        raise HTTPException(status_code=502, detail="Catalog currently unavailable.")
    return {"brands": brands, "types": types}


# --- Basket ---
def _basket_response(session: StorefrontSession):
    basket = session.basket.basket
    if basket is None:
        return {"items": [], "total": 0}
    return basket.model_dump(exclude={"paymentToken"})


@app.get("/basket")
def get_basket():
    return _basket_response(get_session())


@app.post("/basket/sync")
async def sync_basket():
    session = get_session()
    try:
        await session.sync_basket()
    except (httpx.HTTPError, BasketSyncError):
        raise HTTPException(status_code=502, detail="Basket could not be synchronized.")
    return _basket_response(session)


@app.post("/basket/items", status_code=201)
async def add_item(request: AddItemRequest):
    session = get_session()
    try:
        await session.basket.add_item(request.productId, request.unitPrice, request.quantity, request.name)
    except BasketSyncError as e:
        raise HTTPException(status_code=502, detail=e.message)
    return _basket_response(session)


@app.put("/basket/items/{product_id}")
async def set_quantity(product_id: int, request: QuantityRequest):
    session = get_session()
    try:
        await session.basket.set_quantity(product_id, request.quantity)
    except KeyError:
        raise HTTPException(status_code=404, detail="Product not in basket.")
    except BasketSyncError as e:
        raise HTTPException(status_code=502, detail=e.message)
    return _basket_response(session)


@app.delete("/basket/items/{product_id}")
async def remove_item(product_id: int, quantity: Optional[int] = None):
    session = get_session()
    try:
        await session.basket.remove_item(product_id, quantity)
    except BasketSyncError as e:
        raise HTTPException(status_code=502, detail=e.message)
    return _basket_response(session)


# --- Checkout ---
@app.post("/checkout", status_code=201)
async def begin_checkout():
    """
    Starts a checkout session for the current basket.

    Returns:
        dict: The initial checkout state, including the address prefill.

    Raises:
        HTTPException(409): If the basket is empty.
    """
    session = get_session()
    if session.basket.basket is None or session.basket.basket.is_empty:
        raise HTTPException(status_code=409, detail="Basket is empty.")
    checkout = await session.start_checkout()
    return checkout.state.to_dict()


@app.get("/checkout/{session_id}")
def checkout_state(session_id: str):
    return get_checkout(session_id).state.to_dict()


@app.post("/checkout/{session_id}/next")
async def submit_step(session_id: str, submission: StepSubmission):
    checkout = get_checkout(session_id)
    state = await checkout.submit(submission.data, submission.card)
    return state.to_dict()


@app.post("/checkout/{session_id}/back")
def step_back(session_id: str):
    return get_checkout(session_id).back().to_dict()


@app.post("/checkout/{session_id}/retry")
async def retry_checkout(session_id: str, fromStart: bool = False):
    state = await get_checkout(session_id).retry(from_start=fromStart)
    return state.to_dict()


@app.delete("/checkout/{session_id}", status_code=204)
def abandon_checkout(session_id: str):
    get_checkout(session_id)
    if not get_session().end_checkout(session_id):
        raise HTTPException(status_code=409, detail="Payment in progress.")


@app.post("/logout")
async def logout():
    try:
        await get_session().reset()
    except CheckoutInProgressError as e:
        raise HTTPException(status_code=409, detail=e.message)
    return {"status": "logged out"}


# Health Check Endpoint
@app.get("/health")
def health_check():
    """
    Simple health check endpoint.

    Can be used by monitoring systems or container orchestrators
    (e.g., Docker, Kubernetes) to verify that the service is running.

    Returns:
        dict: A basic JSON object indicating service availability.
    """
    return {"status": "ok"}
