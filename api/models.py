"""
API Request and Response Models.

Pydantic models for serializing billing and invoice responses. Billing intake
accepts a free-form JSON object (extra fields become record metadata), so it is
validated by the intake service rather than a request model.
"""

from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from domain.billing_record import BillingRecord
from domain.invoice import Invoice


# ============================================================================
# Billing Models
# ============================================================================

class BillingSubmissionResponse(BaseModel):
    """Response after a billing request has been accepted."""
    success: bool
    message: str
    billing_id: str

    class Config:
        json_schema_extra = {
            "example": {
                "success": True,
                "message": "Billing record processed successfully",
                "billing_id": "123e4567-e89b-12d3-a456-426614174000"
            }
        }


class BillingRecordResponse(BaseModel):
    """Current state of a billing record."""
    id: str
    customer_id: str
    product_id: str
    amount: Decimal
    currency: str
    status: str  # PENDING, PROCESSING, COMPLETED, FAILED
    created_at: datetime
    updated_at: datetime
    retry_count: int
    error_message: Optional[str] = None
    metadata: Dict[str, str] = Field(default_factory=dict)

    @staticmethod
    def from_record(record: BillingRecord) -> "BillingRecordResponse":
        return BillingRecordResponse(
            id=record.record_id,
            customer_id=record.customer_id,
            product_id=record.product_id,
            amount=record.amount,
            currency=record.currency,
            status=record.status.value,
            created_at=record.created_at,
            updated_at=record.updated_at,
            retry_count=record.retry_count,
            error_message=record.error_message,
            metadata=dict(record.metadata),
        )


# ============================================================================
# Invoice Models
# ============================================================================

class AggregationRunRequest(BaseModel):
    """Optional overrides for one aggregation run."""
    batchSize: Optional[int] = Field(None, ge=1, le=10)
    windowSizeMinutes: Optional[int] = Field(None, ge=1)
    timeoutSeconds: Optional[int] = Field(None, ge=1, le=900)

    class Config:
        json_schema_extra = {
            "example": {
                "batchSize": 10,
                "windowSizeMinutes": 5,
                "timeoutSeconds": 60
            }
        }


class AggregationRunResponse(BaseModel):
    success: bool
    batch_id: Optional[str] = None
    messages_processed: int = 0
    billing_records_processed: int = 0
    invoices_created: int = 0
    failed_invoices: int = 0
    messages_deleted: int = 0
    processing_time_ms: int = 0
    invoice_ids: List[str] = Field(default_factory=list)
    error: Optional[str] = None


class InvoiceResponse(BaseModel):
    """A persisted invoice."""
    id: str
    customer_id: str
    currency: str
    total_amount: Decimal
    status: str
    batch_id: str
    window_id: str
    billing_record_ids: List[str]
    created_at: datetime
    updated_at: datetime
    metadata: Dict[str, str] = Field(default_factory=dict)

    @staticmethod
    def from_invoice(invoice: Invoice) -> "InvoiceResponse":
        return InvoiceResponse(
            id=invoice.invoice_id,
            customer_id=invoice.customer_id,
            currency=invoice.currency,
            total_amount=invoice.total_amount,
            status=invoice.status.value,
            batch_id=invoice.batch_id,
            window_id=invoice.window_id,
            billing_record_ids=list(invoice.billing_record_ids),
            created_at=invoice.created_at,
            updated_at=invoice.updated_at,
            metadata=dict(invoice.metadata),
        )


# ============================================================================
# Error Models
# ============================================================================

class ErrorResponse(BaseModel):
    """Standard error response."""
    error: str
    detail: Optional[str] = None
    status_code: int

    class Config:
        json_schema_extra = {
            "example": {
                "error": "Invalid request",
                "detail": "Missing required fields in request: amount",
                "status_code": 400
            }
        }
