"""
API Routes Package

This module consolidates the versioned API routes of the payments service.
"""

from fastapi import APIRouter

from . import orders
from . import paypal

# Create main router
router = APIRouter()

# Include all route modules
router.include_router(orders.router, prefix="/orders", tags=["orders"])
router.include_router(paypal.router, prefix="/paypal", tags=["paypal"])

# Export for use in main application
__all__ = ["router"]
