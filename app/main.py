from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
import logging

# Import database components
from app.database.database import engine, Base

# Import middleware
from app.common.middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware

# Import routers
from app.modules.auth.router import auth_router
from app.modules.customers.router import router as customers_router
from app.modules.products.router import product_router
from app.modules.invoices.router import router as invoices_router
from app.modules.returns.router import router as returns_router
from app.modules.employees.router import router as employees_router
from app.modules.chalans.router import router as chalans_router

# Import models for table creation
import app.modules.auth.models
import app.modules.customers.models
import app.modules.products.models
import app.modules.invoices.models
import app.modules.returns.models
import app.modules.employees.models
import app.modules.chalans.models

from app.core.config import settings

# Configure logging
logging.basicConfig(
    level=logging.INFO if settings.ENVIRONMENT == "production" else logging.DEBUG,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# FastAPI app
app = FastAPI(
    title="Shopdesk API",
    description="Retail point of sale API: sales, stock, returns and exchanges, delivery slips, payroll",
    version="1.0.0",
    docs_url="/docs" if settings.ENVIRONMENT != "production" else None,
    redoc_url="/redoc" if settings.ENVIRONMENT != "production" else None
)

# Add middleware (order matters!)
app.add_middleware(GZipMiddleware, minimum_size=1000)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(RequestLoggingMiddleware)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(auth_router, prefix="/auth", tags=["Auth"])
app.include_router(customers_router)
app.include_router(product_router, tags=["Products"])
app.include_router(invoices_router)
app.include_router(returns_router)
app.include_router(employees_router)
app.include_router(chalans_router)

# Create database tables (schema changes in production are applied by hand)
if settings.ENVIRONMENT != "production":
    Base.metadata.create_all(bind=engine)


@app.get("/")
async def read_root():
    return {
        "message": "Shopdesk API is running",
        "version": "1.0.0",
        "environment": settings.ENVIRONMENT
    }


@app.get("/health")
async def health_check():
    return {"status": "healthy", "environment": settings.ENVIRONMENT}


@app.on_event("startup")
async def startup_event():
    logger.info("Shopdesk API starting up...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Debug mode: {settings.DEBUG}")
