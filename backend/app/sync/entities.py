"""
Collection names, per-entity policies and the public endpoint names.
"""

CUSTOMERS = "customers"
SUPPLIERS = "suppliers"
CUSTOMER_TRANSACTIONS = "customer_transactions"
SUPPLIER_TRANSACTIONS = "supplier_transactions"
CATEGORIES = "categories"
PRODUCTS = "products"
PRODUCT_BATCHES = "product_batches"
D_PRODUCTS = "d_products"
ORDERS = "orders"
REFUNDS = "refunds"
VENDOR_ORDERS = "vendor_orders"
TRANSACTIONS = "transactions"
EXPENSES = "expenses"

# Entities without financial effect are removed outright; everything else keeps a tombstone.
HARD_DELETE = frozenset({PRODUCTS, PRODUCT_BATCHES})

# collection -> plan-usage counter
QUOTA_KINDS = {
    CUSTOMERS: "customers",
    PRODUCTS: "products",
    ORDERS: "orders",
}

# URL segment -> collection
ENDPOINTS = {
    "customers": CUSTOMERS,
    "suppliers": SUPPLIERS,
    "customer-transactions": CUSTOMER_TRANSACTIONS,
    "supplier-transactions": SUPPLIER_TRANSACTIONS,
    "categories": CATEGORIES,
    "products": PRODUCTS,
    "product-batches": PRODUCT_BATCHES,
    "d-products": D_PRODUCTS,
    "orders": ORDERS,
    "refunds": REFUNDS,
    "vendor-orders": VENDOR_ORDERS,
    "transactions": TRANSACTIONS,
    "expenses": EXPENSES,
}

# Channels that also carry the parent's ledger entries.
MIXED_CHANNELS = {
    CUSTOMERS: CUSTOMER_TRANSACTIONS,
    SUPPLIERS: SUPPLIER_TRANSACTIONS,
}

# Result labels used on mixed channels.
KIND_LABELS = {
    CUSTOMERS: "customer",
    CUSTOMER_TRANSACTIONS: "customerTransaction",
    SUPPLIERS: "supplier",
    SUPPLIER_TRANSACTIONS: "supplierTransaction",
}

# Collections whose changes can move stock levels.
STOCK_COLLECTIONS = frozenset({PRODUCTS, PRODUCT_BATCHES, ORDERS, REFUNDS})
