from __future__ import annotations

from fastapi import APIRouter

from creditshop.api.routes import admins, auth, health, products, slips, stock_items, transactions, users, webhook

router = APIRouter()
router.include_router(health.router, tags=["health"])
router.include_router(auth.router, prefix="/auth", tags=["auth"])
router.include_router(products.router, prefix="/products", tags=["products"])
router.include_router(stock_items.router, prefix="/stock-items", tags=["stock"])
router.include_router(slips.router, prefix="/slips", tags=["slips"])
router.include_router(users.router, prefix="/users", tags=["users"])
router.include_router(transactions.router, tags=["transactions"])
router.include_router(admins.router, prefix="/admins", tags=["admins"])
router.include_router(webhook.router, prefix="/webhook", tags=["webhook"])
