from fastapi import APIRouter

from autoparts.app.api.v1.endpoints import (
    auth,
    cash_withdrawals,
    products,
    purchase_orders,
    quotations,
    returns,
    sales,
)

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(products.router, prefix="/products", tags=["products"])
api_router.include_router(sales.router, prefix="/sales", tags=["sales"])
api_router.include_router(returns.router, prefix="/returns", tags=["returns"])
api_router.include_router(quotations.router, prefix="/quotations", tags=["quotations"])
api_router.include_router(purchase_orders.router, prefix="/purchase-orders", tags=["purchase-orders"])
api_router.include_router(cash_withdrawals.router, prefix="/cash-withdrawals", tags=["cash-withdrawals"])
