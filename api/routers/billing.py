"""
Billing API Endpoints.

Endpoints for submitting billing requests and checking record status.
"""

from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, HTTPException

from api.dependencies import get_queue, get_record_store, get_settings
from api.models import BillingRecordResponse, BillingSubmissionResponse, ErrorResponse
from domain.errors import StoreError
from repositories.contracts import BillingRecordStore, WorkQueue
from services.billing_intake_service import BillingRequest, BillingRequestError, submit_billing_request
from services.settings import PipelineSettings

router = APIRouter()


@router.post(
    "/billing",
    response_model=BillingSubmissionResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
    summary="Submit Billing Request",
    description="Store a new billing record and queue it for processing."
)
def submit_billing(
    payload: Dict[str, Any] = Body(...),
    record_store: BillingRecordStore = Depends(get_record_store),
    queue: WorkQueue = Depends(get_queue),
    settings: PipelineSettings = Depends(get_settings),
):
    """
    Accept a billing request.

    **Required fields:** `customerId`, `productId`, `amount`, `currency`.
    Any other field is stored as string metadata on the record.

    **Example request:**
    ```json
    {
      "customerId": "customer-42",
      "productId": "product-7",
      "amount": "100.00",
      "currency": "USD",
      "region": "eu-west-1"
    }
    ```
    """
    try:
        request = BillingRequest.from_payload(payload)
    except BillingRequestError as e:
        raise HTTPException(status_code=400, detail=str(e))

    result = submit_billing_request(request, record_store, queue, settings)
    if not result.success:
        raise HTTPException(status_code=500, detail=result.error)

    return BillingSubmissionResponse(
        success=True,
        message=result.message or "Billing record processed successfully",
        billing_id=result.record_id,
    )


@router.get(
    "/billing/{record_id}",
    response_model=BillingRecordResponse,
    summary="Get Billing Record",
    description="Return the current lifecycle state of a billing record."
)
def get_billing_record(
    record_id: str,
    record_store: BillingRecordStore = Depends(get_record_store),
):
    try:
        record = record_store.get(record_id)
    except StoreError as e:
        raise HTTPException(status_code=500, detail=f"Failed to load billing record: {str(e)}")

    if record is None:
        raise HTTPException(status_code=404, detail=f"Billing record not found: {record_id}")

    return BillingRecordResponse.from_record(record)
