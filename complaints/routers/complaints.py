"""
Complaints Router
API endpoints for filing, updating and browsing product complaints.

Wire format is camelCase (productId, complainantId, creationDate, ...).
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from complaints.models.complaint import Complaint
from complaints.services.complaint_service import ComplaintService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/complaints", tags=["Complaints"])

FORWARDED_FOR_HEADER = "X-Forwarded-For"
MAX_PAGE_SIZE = 100


# =============================================================================
# Request/Response Models
# =============================================================================

class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ComplaintCreateRequest(CamelModel):
    """Request to create a new complaint."""
    product_id: str = Field(..., examples=["31f871b0-321f-4063-88b2-b4aeca45adf0"])
    content: str = Field(..., examples=["This product broke after two days."])
    complainant_id: str = Field(..., examples=["2a0863a2-563f-4a6c-abd3-5305bbfa6436"])

    @field_validator("product_id", "content", "complainant_id")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("must not be blank")
        return v


class ComplaintResponse(CamelModel):
    """Basic complaint view."""
    id: str
    product_id: str
    content: str
    creation_date: datetime
    update_date: Optional[datetime]
    country: str


class ComplaintFullResponse(ComplaintResponse):
    """Full complaint view used for listings."""
    complainant_id: str
    counter: int


def to_complaint_response(complaint: Complaint) -> ComplaintResponse:
    return ComplaintResponse(
        id=complaint.id,
        product_id=complaint.product_id,
        content=complaint.content,
        creation_date=complaint.creation_date,
        update_date=complaint.update_date,
        country=complaint.country,
    )


def to_full_response(complaint: Complaint) -> ComplaintFullResponse:
    return ComplaintFullResponse(
        id=complaint.id,
        product_id=complaint.product_id,
        content=complaint.content,
        creation_date=complaint.creation_date,
        update_date=complaint.update_date,
        complainant_id=complaint.complainant_id,
        country=complaint.country,
        counter=complaint.counter,
    )


# =============================================================================
# Helpers
# =============================================================================

def get_complaint_service(request: Request) -> ComplaintService:
    """The service instance wired up in the application lifespan."""
    return request.app.state.complaint_service


def resolve_ip_address(request: Request) -> str:
    """
    Client IP for geolocation. Behind a proxy the first X-Forwarded-For hop
    is the original client; otherwise use the socket peer.
    """
    forwarded_for = request.headers.get(FORWARDED_FOR_HEADER)
    ip_address = None
    if forwarded_for:
        ip_address = forwarded_for.split(",")[0].strip() or None
    if ip_address is None:
        ip_address = request.client.host if request.client else "unknown"
    logger.debug("Request from IP: %s", ip_address)
    return ip_address


# =============================================================================
# Endpoints
# =============================================================================

@router.post("", response_model=ComplaintResponse, response_model_by_alias=True)
async def create_complaint(
    body: ComplaintCreateRequest,
    request: Request,
    service: ComplaintService = Depends(get_complaint_service),
) -> ComplaintResponse:
    """
    Create a new complaint.

    Submitting again for the same product and complainant does not create a
    second complaint; the existing one's counter goes up instead.
    """
    complaint = await service.create_complaint(
        product_id=body.product_id,
        content=body.content,
        complainant_id=body.complainant_id,
        ip_address=resolve_ip_address(request),
    )
    return to_complaint_response(complaint)


@router.put("/{complaint_id}/content", response_model=ComplaintResponse, response_model_by_alias=True)
async def update_complaint_content(
    complaint_id: str,
    request: Request,
    content: str = Query(..., min_length=1, pattern=r"\S", description="New complaint content"),
    service: ComplaintService = Depends(get_complaint_service),
) -> ComplaintResponse:
    """Update complaint content by ID."""
    complaint = await service.update_complaint_content(
        complaint_id, content, resolve_ip_address(request)
    )
    return to_complaint_response(complaint)


@router.get("/{complaint_id}", response_model=ComplaintResponse, response_model_by_alias=True)
async def get_complaint_by_id(
    complaint_id: str,
    service: ComplaintService = Depends(get_complaint_service),
) -> ComplaintResponse:
    """Get a complaint by ID."""
    complaint = await service.get_complaint_by_id(complaint_id)
    return to_complaint_response(complaint)


@router.get("", response_model=list[ComplaintFullResponse], response_model_by_alias=True)
async def list_complaints(
    product_id: Optional[str] = Query(None, alias="productId"),
    complainant_id: Optional[str] = Query(None, alias="complainantId"),
    from_date: Optional[datetime] = Query(None, alias="fromDate", description="ISO date-time, inclusive"),
    to_date: Optional[datetime] = Query(None, alias="toDate", description="ISO date-time, inclusive"),
    page: int = Query(0, ge=0),
    size: int = Query(10, ge=1, le=MAX_PAGE_SIZE),
    service: ComplaintService = Depends(get_complaint_service),
) -> list[ComplaintFullResponse]:
    """List complaints with optional filters and pagination."""
    complaints = await service.get_complaints(
        product_id=product_id,
        complainant_id=complainant_id,
        from_date=from_date,
        to_date=to_date,
        page=page,
        size=size,
    )
    return [to_full_response(c) for c in complaints]
