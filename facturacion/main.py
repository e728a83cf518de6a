"""
Invoicing Service
Handles invoices, quotes, payments, receivables and the sales dashboard
"""

import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

load_dotenv()

from .routers import dashboard, invoices, messages, quotes, receivables
from .shared import config
from .shared.error_handlers import register_exception_handlers
from .shared.firebase_client import init_firebase

logging.basicConfig(
    level=config.log_level(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize services on startup"""
    init_firebase()
    logger.info("Invoicing Service started")
    yield
    logger.info("Invoicing Service shutting down")


def create_app() -> FastAPI:
    app = FastAPI(
        title="Facturacion - Invoicing Service",
        description="Invoices, payments, receivables and dashboard metrics",
        version="1.0.0",
        lifespan=lifespan
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    # Include routers
    app.include_router(invoices.router, prefix="/api/invoices", tags=["Invoices"])
    app.include_router(quotes.router, prefix="/api/quotes", tags=["Quotes"])
    app.include_router(receivables.router, prefix="/api/receivables", tags=["Receivables"])
    app.include_router(dashboard.router, prefix="/api/dashboard", tags=["Dashboard"])
    app.include_router(messages.router, prefix="/api/messages", tags=["Messages"])

    @app.get("/health")
    async def health_check():
        return {"status": "healthy", "service": "facturacion"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=config.port())
