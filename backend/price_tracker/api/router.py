"""
Main API router that includes all endpoint routers
"""

from fastapi import APIRouter

from price_tracker.api import admin, cron, deeplink, products, scheduler_status

# Create main API router
api_router = APIRouter(prefix="/api/v1")

# Include all route modules
api_router.include_router(cron.router)
api_router.include_router(deeplink.router)
api_router.include_router(products.router)
api_router.include_router(admin.router)
api_router.include_router(scheduler_status.router)


# Add a simple health check for the API
@api_router.get("/health")
async def api_health():
    """API health check endpoint"""
    return {
        "status": "healthy",
        "message": "Price Tracker API is running",
        "endpoints": {
            "cron": "/api/v1/cron/collect-prices",
            "deeplink": "/api/v1/deeplink",
            "products": "/api/v1/products",
            "search": "/api/v1/search",
            "categories": "/api/v1/categories",
            "admin": "/api/v1/admin",
            "scheduler": "/api/v1/scheduler"
        }
    }
