"""
Billing Pipeline API - Main Application.

FastAPI application exposing billing intake, record lookups and the invoice
aggregation trigger.
"""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api import __version__

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

# Create FastAPI application
app = FastAPI(
    title="Billing Pipeline API",
    description="REST API for submitting billing requests and aggregating invoices",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)

# Intake is called by load generators and other services
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type"],
)


@app.get("/health", tags=["Health"])
def health_check():
    """
    Health check endpoint.

    Returns the API status and version.
    """
    return {
        "status": "healthy",
        "version": __version__,
        "service": "billing-pipeline-api"
    }


@app.get("/", tags=["Root"])
def root():
    """
    Root endpoint with API information.
    """
    return {
        "message": "Billing Pipeline API",
        "version": __version__,
        "docs": "/docs",
        "health": "/health"
    }


# Import and include routers
from api.routers import billing, invoices

app.include_router(billing.router, prefix="/api/v1", tags=["Billing"])
app.include_router(invoices.router, prefix="/api/v1", tags=["Invoices"])
