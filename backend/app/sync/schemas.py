"""
Inbound item shapes.

Devices send camelCase; models accept camelCase or snake_case and dump snake_case.
Only the fields a device actually sent are applied on update (`exclude_unset`).
"""

from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from ..validation import (
    ClientId,
    CustomerLedgerType,
    ExpenseCategory,
    IsoDate,
    Name,
    OrderPaymentMethod,
    SupplierLedgerType,
    TransactionPaymentMethod,
    TransactionType,
    VendorOrderStatus,
    VendorPaymentMethod,
    VendorPaymentStatus,
)


def _alias(*names: str):
    return Field(None, validation_alias=AliasChoices(*names))


class SyncItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    local_id: ClientId = Field(None, alias="id")
    server_id: ClientId = Field(None, alias="_id")
    is_deleted: Optional[bool] = Field(None, alias="isDeleted")
    kind: Optional[str] = None


IDENTITY_FIELDS = frozenset({"local_id", "server_id", "is_deleted", "kind"})


class CustomerIn(SyncItem):
    name: Name
    mobile_number: Optional[str] = _alias("mobileNumber", "phone", "mobile_number")
    email: Optional[str] = None
    address: Optional[str] = None
    # Accepted but never applied: balances come from the ledger.
    due_amount: Optional[float] = _alias("dueAmount", "due_amount")


class SupplierIn(CustomerIn):
    gst_number: Optional[str] = _alias("gstNumber", "gst_number")


class CustomerEntryIn(SyncItem):
    party_ref: ClientId = Field(..., validation_alias=AliasChoices("customerId", "customer_id"))
    order_ref: ClientId = _alias("orderId", "order_id")
    type: CustomerLedgerType
    amount: float = Field(..., ge=0)
    date: IsoDate = None
    description: Optional[str] = None


class SupplierEntryIn(CustomerEntryIn):
    party_ref: ClientId = Field(..., validation_alias=AliasChoices("supplierId", "supplier_id"))
    type: SupplierLedgerType


class CategoryIn(SyncItem):
    name: Name
    description: Optional[str] = None
    image: Optional[str] = None
    is_active: Optional[bool] = _alias("isActive", "is_active")


class ProductIn(SyncItem):
    name: Name
    description: Optional[str] = None
    barcode: Optional[str] = None
    category: Optional[str] = None
    category_ref: ClientId = _alias("categoryId", "category_id")
    category_is_active: Optional[bool] = _alias("categoryIsActive", "category_is_active")
    category_description: Optional[str] = _alias("categoryDescription", "category_description")
    unit: Optional[str] = _alias("unit", "quantityUnit")
    low_stock_level: Optional[float] = _alias("lowStockLevel", "low_stock_level")
    track_expiry: Optional[bool] = _alias("trackExpiry", "track_expiry")
    is_active: Optional[bool] = _alias("isActive", "is_active")
    cost_price: Optional[float] = _alias("costPrice", "unitPrice", "cost_price")
    selling_unit_price: Optional[float] = _alias("sellingUnitPrice", "sellingPrice", "selling_unit_price")
    wholesale_price: Optional[float] = _alias("wholesalePrice", "wholesale_price")
    wholesale_moq: Optional[float] = _alias("wholesaleMOQ", "wholesaleMoq", "wholesale_moq")
    hsn_code: Optional[str] = _alias("hsnCode", "hsn_code")
    gst_percent: Optional[float] = _alias("gstPercent", "gst_percent")
    is_gst_inclusive: Optional[bool] = _alias("isGstInclusive", "is_gst_inclusive")


# Category fields on a product payload feed the category lookup, never the product document.
PRODUCT_CATEGORY_FIELDS = frozenset({"category", "category_ref", "category_is_active", "category_description"})


class DProductIn(SyncItem):
    p_code: Name = Field(..., validation_alias=AliasChoices("pCode", "p_code"))
    product_name: Name = Field(..., validation_alias=AliasChoices("productName", "product_name"))
    unit: Optional[str] = None
    tax_percentage: Optional[float] = _alias("taxPercentage", "tax_percentage")
    is_active: Optional[bool] = _alias("isActive", "is_active")


class ProductBatchIn(SyncItem):
    product_ref: ClientId = Field(..., validation_alias=AliasChoices("productId", "product_id"))
    batch_number: Optional[str] = _alias("batchNumber", "batch_number")
    mfg: IsoDate = _alias("mfg", "mfgDate")
    expiry: IsoDate = _alias("expiry", "expiryDate")
    quantity: Optional[float] = Field(None, ge=0)
    cost_price: Optional[float] = _alias("costPrice", "cost_price")
    selling_unit_price: Optional[float] = _alias("sellingUnitPrice", "selling_unit_price")
    wholesale_price: Optional[float] = _alias("wholesalePrice", "wholesale_price")
    wholesale_moq: Optional[float] = _alias("wholesaleMOQ", "wholesaleMoq", "wholesale_moq")


class OrderLineIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    product_ref: ClientId = _alias("productId", "product_id")
    d_product_ref: ClientId = _alias("dProductId", "d_product_id")
    name: Name
    selling_price: float = Field(..., ge=0, validation_alias=AliasChoices("sellingPrice", "selling_price"))
    cost_price: float = Field(..., ge=0, validation_alias=AliasChoices("costPrice", "cost_price"))
    quantity: float = Field(..., gt=0)
    unit: Name


class SplitPaymentIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: Optional[str] = None
    cash_amount: float = Field(0, ge=0, validation_alias=AliasChoices("cashAmount", "cash_amount"))
    online_amount: float = Field(0, ge=0, validation_alias=AliasChoices("onlineAmount", "online_amount"))
    due_amount: float = Field(0, ge=0, validation_alias=AliasChoices("dueAmount", "due_amount"))


class OrderIn(SyncItem):
    customer_ref: ClientId = _alias("customerId", "customer_id")
    customer_name: Optional[str] = _alias("customerName", "customer_name")
    customer_mobile: Optional[str] = _alias("customerMobile", "customer_mobile")
    payment_method: OrderPaymentMethod = Field(
        "cash", validation_alias=AliasChoices("paymentMethod", "payment_method")
    )
    split_payment_details: Optional[SplitPaymentIn] = _alias("splitPaymentDetails", "split_payment_details")
    items: list[OrderLineIn] = Field(..., min_length=1)
    total_amount: float = Field(..., gt=0, validation_alias=AliasChoices("totalAmount", "total_amount"))
    subtotal: Optional[float] = None
    discount_percent: Optional[float] = _alias("discountPercent", "discount_percent")
    tax_percent: Optional[float] = _alias("taxPercent", "tax_percent")
    invoice_number: Optional[str] = _alias("invoiceNumber", "invoice_number")
    all_payment_clear: Optional[bool] = _alias("allPaymentClear", "all_payment_clear")
    stock_deducted: Optional[bool] = _alias("stockDeducted", "stock_deducted")
    due_added: Optional[bool] = _alias("dueAdded", "due_added")
    client_created_at: Optional[str | int | float] = _alias("createdAt", "created_at")


class RefundLineIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    product_ref: ClientId = Field(..., validation_alias=AliasChoices("productId", "product_id"))
    name: Optional[str] = None
    qty: float = Field(..., gt=0, validation_alias=AliasChoices("qty", "quantity"))
    rate: float = Field(0, ge=0)
    line_total: Optional[float] = _alias("lineTotal", "line_total")
    unit: str = "pcs"


class RefundIn(SyncItem):
    order_ref: ClientId = Field(..., validation_alias=AliasChoices("orderId", "order_id"))
    customer_ref: ClientId = _alias("customerId", "customer_id")
    items: list[RefundLineIn] = Field(..., min_length=1)
    total_refund_amount: Optional[float] = Field(
        None, ge=0, validation_alias=AliasChoices("totalRefundAmount", "total_refund_amount")
    )
    reason: Optional[str] = None
    refunded_by_user: Optional[str] = _alias("refundedByUser", "refunded_by_user")
    stock_adjusted: Optional[bool] = _alias("stockAdjusted", "stock_adjusted")


class VendorOrderLineIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    product_ref: ClientId = _alias("productId", "product_id")
    product_name: Name = Field(..., validation_alias=AliasChoices("productName", "product_name", "name"))
    quantity: float = Field(..., gt=0)
    price: float = Field(..., ge=0)
    unit: str = "pcs"
    is_custom_product: Optional[bool] = _alias("isCustomProduct", "is_custom_product")


class VendorOrderIn(SyncItem):
    supplier_ref: ClientId = _alias("supplierId", "supplier_id")
    supplier_name: Name = Field(..., validation_alias=AliasChoices("supplierName", "supplier_name"))
    items: list[VendorOrderLineIn] = Field(..., min_length=1)
    status: Optional[VendorOrderStatus] = None
    payment_method: Optional[VendorPaymentMethod] = _alias("paymentMethod", "payment_method")
    amount_paid: Optional[float] = Field(None, ge=0, validation_alias=AliasChoices("amountPaid", "amount_paid"))
    balance_due: Optional[float] = _alias("balanceDue", "balance_due")
    payment_status: Optional[VendorPaymentStatus] = _alias("paymentStatus", "payment_status")
    notes: Optional[str] = None
    expected_delivery_date: IsoDate = _alias("expectedDeliveryDate", "expected_delivery_date")
    client_created_at: Optional[str | int | float] = _alias("createdAt", "created_at")


class TransactionIn(SyncItem):
    type: TransactionType = "sale"
    amount: float = Field(..., ge=0, validation_alias=AliasChoices("amount", "total"))
    payment_method: TransactionPaymentMethod = Field(
        "cash", validation_alias=AliasChoices("paymentMethod", "payment_method")
    )
    description: Optional[str] = None
    date: IsoDate = None


class ExpenseIn(SyncItem):
    amount: float = Field(..., ge=0)
    category: ExpenseCategory
    description: Optional[str] = None
    date: IsoDate = None
