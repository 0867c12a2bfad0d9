# routers/inquiries.py
from fastapi import APIRouter, Depends

from mailer import send_inquiry_email
from rate_limit import rate_limited
from schemas import InquiryRequest

router = APIRouter(prefix="/api", tags=["inquiries"], dependencies=[Depends(rate_limited)])


@router.post("/send-inquiry")
def send_inquiry(payload: InquiryRequest):
    send_inquiry_email(payload.as_mail())
    return {"success": True}
