from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from typing import List

from paystock.crud.inventory import inventory_ledger
from paystock.dependencies import get_db
from paystock.exceptions import PersistenceError
from paystock.schemas import ProductResponse

router = APIRouter(tags=["catalog"])


@router.get("/products", response_model=List[ProductResponse])
def list_products(db: Session = Depends(get_db)):
    try:
        return inventory_ledger.list_products(db)
    except PersistenceError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Catalog is temporarily unavailable"
        )
