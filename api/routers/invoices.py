"""
Invoices API Endpoints.

Endpoints for triggering an aggregation run and reading invoices.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from api.dependencies import get_aggregator, get_invoice_store, get_settings
from api.models import AggregationRunRequest, AggregationRunResponse, InvoiceResponse
from domain.errors import StoreError
from repositories.contracts import InvoiceStore
from services.invoice_aggregation_service import AggregationRequest, InvoiceAggregator
from services.settings import PipelineSettings

router = APIRouter()


@router.post(
    "/invoices/aggregate",
    response_model=AggregationRunResponse,
    summary="Run Invoice Aggregation",
    description="Drain the invoice queue once and build time-windowed invoices."
)
def run_aggregation(
    request: Optional[AggregationRunRequest] = None,
    aggregator: InvoiceAggregator = Depends(get_aggregator),
    settings: PipelineSettings = Depends(get_settings),
):
    """
    Run one aggregation pass.

    The run is bounded by `timeoutSeconds`; partial progress is reported when
    the budget runs out. Omitted fields use the configured defaults.
    """
    event = request.model_dump(exclude_none=True) if request else {}
    result = aggregator.run(AggregationRequest.from_event(event, settings))

    response = AggregationRunResponse(
        success=result.success,
        batch_id=result.batch_id,
        messages_processed=result.messages_processed,
        billing_records_processed=result.billing_records_processed,
        invoices_created=result.invoices_created,
        failed_invoices=result.failed_invoices,
        messages_deleted=result.messages_deleted,
        processing_time_ms=result.processing_time_ms,
        invoice_ids=result.invoice_ids,
        error=result.error,
    )
    if result.batch_id is None:
        raise HTTPException(status_code=500, detail=result.error)
    return response


@router.get(
    "/invoices/{invoice_id}",
    response_model=InvoiceResponse,
    summary="Get Invoice",
)
def get_invoice(
    invoice_id: str,
    invoice_store: InvoiceStore = Depends(get_invoice_store),
):
    try:
        invoice = invoice_store.get(invoice_id)
    except StoreError as e:
        raise HTTPException(status_code=500, detail=f"Failed to load invoice: {str(e)}")

    if invoice is None:
        raise HTTPException(status_code=404, detail=f"Invoice not found: {invoice_id}")

    return InvoiceResponse.from_invoice(invoice)
