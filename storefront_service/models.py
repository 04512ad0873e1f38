"""
models.py — Data Models for Basket, Catalog and Checkout

This module defines the data structures exchanged with the order-management API
and the payment provider. It uses Pydantic models to ensure type safety and
automatic validation of incoming data. Field names follow the wire format.

Models:
    - LineItem / Basket: Client-held basket with its bound payment token.
    - ShippingAddress: Address collected in the first checkout step.
    - Product / MetaData / ProductParams / ProductPage / ProductFilters: Catalog data.
    - OrderCommitRequest: Body + idempotency key for POST /orders.
    - BillingDetails / PaymentConfirmationRequest / PaymentConfirmationResponse:
      Payment provider confirmation contract.
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, computed_field

from .config import CATALOG_PAGE_SIZE


class LineItem(BaseModel):
    """
    Represents a single product line in the basket.

    Attributes:
        productId (int): Catalog identifier of the product.
        quantity (int): Number of units. Must be greater than zero.
        unitPrice (int): Price per unit in minor currency units (cents).
        name (Optional[str]): Display name, if known.
    """
    productId: int
    quantity: int = Field(..., gt=0)
    unitPrice: int = Field(..., ge=0)
    name: Optional[str] = None

    @property
    def subtotal(self) -> int:
        return self.quantity * self.unitPrice


class Basket(BaseModel):
    """
    The client-held basket.

    A non-empty basket always carries a payment token bound to its total.
    The token is opaque to the storefront and authorizes exactly one payment attempt.

    Attributes:
        basketId (Optional[str]): Server-side basket identifier.
        items (List[LineItem]): Ordered line items.
        paymentToken (Optional[str]): Client secret issued by the payment provider.
    """
    basketId: Optional[str] = None
    items: List[LineItem] = Field(default_factory=list)
    paymentToken: Optional[str] = None

    @computed_field
    @property
    def total(self) -> int:
        return sum(item.subtotal for item in self.items)

    @property
    def is_empty(self) -> bool:
        return not self.items

    def find(self, product_id: int) -> Optional[LineItem]:
        for item in self.items:
            if item.productId == product_id:
                return item
        return None


class ShippingAddress(BaseModel):
    fullName: str
    address1: str
    address2: Optional[str] = None
    city: str
    state: str
    zip: str
    country: str


class Product(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    price: int
    pictureUrl: Optional[str] = None
    type: Optional[str] = None
    brand: Optional[str] = None
    quantityInStock: Optional[int] = None


class MetaData(BaseModel):
    """Pagination metadata as reported by the catalog list endpoint."""
    currentPage: int
    pageSize: int
    totalCount: int
    totalPages: int


class ProductParams(BaseModel):
    """
    Query parameters for the catalog list endpoint.

    Attributes:
        pageNumber (int): 1-based page index.
        pageSize (int): Products per page.
        orderBy (str): Ordering key ("name", "price", "priceDesc").
        searchTerm (Optional[str]): Free-text filter.
        brands (List[str]): Brand filter, sent comma-joined.
        types (List[str]): Type filter, sent comma-joined.
    """
    pageNumber: int = 1
    pageSize: int = CATALOG_PAGE_SIZE
    orderBy: str = "name"
    searchTerm: Optional[str] = None
    brands: List[str] = Field(default_factory=list)
    types: List[str] = Field(default_factory=list)

    def to_query(self) -> Dict[str, str]:
        """Builds the query string mapping; optional filters are left out when empty."""
        params = {
            "pageNumber": str(self.pageNumber),
            "pageSize": str(self.pageSize),
            "orderBy": self.orderBy,
        }
        if self.searchTerm:
            params["searchTerm"] = self.searchTerm
        if self.brands:
            params["brands"] = ",".join(self.brands)
        if self.types:
            params["types"] = ",".join(self.types)
        return params


class ProductPage(BaseModel):
    items: List[Product]
    metaData: MetaData


class ProductFilters(BaseModel):
    brands: List[str] = Field(default_factory=list)
    types: List[str] = Field(default_factory=list)


class OrderCommitRequest(BaseModel):
    """
    Request to durably create an order after the payment has been captured.

    Attributes:
        idempotencyKey (str): Deterministic key, identical for every retry of the same capture.
        shippingAddress (ShippingAddress): Destination of the order.
        saveAddress (bool): Whether the backend should store the address on the account.
    """
    idempotencyKey: str
    shippingAddress: ShippingAddress
    saveAddress: bool = False

    def body(self) -> Dict[str, Any]:
        """JSON body for POST /orders; the key travels as a header."""
        return {
            "saveAddress": self.saveAddress,
            "shippingAddress": self.shippingAddress.model_dump(),
        }


class BillingDetails(BaseModel):
    name: str


class PaymentConfirmationRequest(BaseModel):
    """
    Confirmation call sent to the payment provider.

    Attributes:
        clientSecret (str): The basket's payment token.
        cardElementPayload (Dict[str, Any]): Card fields as entered; opaque, never persisted.
        billingDetails (BillingDetails): Cardholder details.
    """
    clientSecret: str
    cardElementPayload: Dict[str, Any]
    billingDetails: BillingDetails


class PaymentConfirmationResponse(BaseModel):
    status: Literal["succeeded", "requires_action", "failed"]
    errorMessage: Optional[str] = None
    fieldErrors: Dict[str, str] = Field(default_factory=dict)
