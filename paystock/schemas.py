from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, Dict
from datetime import datetime

# ------------------------------
# Catalog
# ------------------------------
class ProductResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    price: int
    stock: int

# ------------------------------
# Order history (admin report)
# ------------------------------
class OrderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    amount: int
    description: str
    created_at: datetime
    method: str
    name: str
    address: str
    phone: str
    dedup_key: str

# ------------------------------
# Payment authorization (Stripe PaymentIntent)
# ------------------------------
class PaymentIntentCreate(BaseModel):
    amount: int = Field(..., gt=0)
    description: str = Field(..., min_length=1)
    name: Optional[str] = ""
    address: Optional[str] = ""
    phone: Optional[str] = ""

class PaymentIntentResponse(BaseModel):
    clientSecret: str

# ------------------------------
# Inbound confirmation payloads
# ------------------------------
class WalletPaymentPayload(BaseModel):
    """Direct (unsigned) wallet notification"""
    amount: int = Field(..., gt=0)
    description: str = Field(..., min_length=1)
    name: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    idempotency_key: Optional[str] = Field(None, min_length=1, max_length=200)

class StripePaymentIntent(BaseModel):
    id: str = Field(..., min_length=1)
    amount: int = Field(..., gt=0)
    description: str = Field(..., min_length=1)
    metadata: Dict[str, Optional[str]] = Field(default_factory=dict)

class StripeEventData(BaseModel):
    object: dict

class StripeEventPayload(BaseModel):
    id: str
    type: str
    data: StripeEventData
