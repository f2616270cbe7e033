"""FastAPI routes for payment cost previews and verification."""

from typing import Literal

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field

from controllers.payment_controller import initiate_payment, verify_payment

router = APIRouter(prefix="/payments", tags=["payments"])

PaymentAction = Literal["generate-game", "mint-nft"]


class InitiatePayload(BaseModel):
	writerCoinId: str = Field(min_length=1)
	action: PaymentAction


class VerifyPayload(BaseModel):
	transactionHash: str = Field(pattern=r"^0x[a-fA-F0-9]{64}$")
	writerCoinId: str = Field(min_length=1)
	action: PaymentAction


@router.post("/initiate")
async def initiate_payment_route(request: Request, payload: InitiatePayload):
	try:
		return await initiate_payment(request, payload.writerCoinId, payload.action)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.post("/verify")
async def verify_payment_route(request: Request, payload: VerifyPayload):
	try:
		return await verify_payment(request, payload.transactionHash, payload.action)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))
