from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.templating import Jinja2Templates
from sqlalchemy.orm import Session
from pathlib import Path
from typing import List

from paystock.crud.orders import order_ledger
from paystock.dependencies import get_db
from paystock.exceptions import PersistenceError
from paystock.schemas import OrderResponse
from paystock.security import require_admin

templates = Jinja2Templates(directory=str(Path(__file__).resolve().parent.parent / "templates"))
router = APIRouter(prefix="/admin", tags=["admin"])


def _load_orders(db: Session):
    try:
        return order_ledger.list_all(db)
    except PersistenceError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Payment history is temporarily unavailable"
        )


# -----------------------------
# Payment history report
# -----------------------------
@router.get("")
def payment_history(
    request: Request,
    db: Session = Depends(get_db),
    admin: str = Depends(require_admin),
):
    orders = _load_orders(db)
    return templates.TemplateResponse(
        request,
        "admin_report.html",
        {
            "orders": orders,
            "currency": request.app.state.settings.CURRENCY.upper(),
        },
    )


@router.get("/orders", response_model=List[OrderResponse])
def list_orders(db: Session = Depends(get_db), admin: str = Depends(require_admin)):
    return _load_orders(db)
