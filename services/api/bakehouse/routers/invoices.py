from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from .. import schemas
from ..deps import get_db
from ..services import invoices

router = APIRouter()


@router.get("/invoices", response_model=list[schemas.InvoiceOut])
def list_invoices(db: Session = Depends(get_db)):
    return invoices.list_invoices(db)


@router.get("/invoices/{invoice_id}", response_model=schemas.InvoiceOut)
def get_invoice(invoice_id: str, db: Session = Depends(get_db)):
    return invoices.get_invoice(db, invoice_id)


@router.patch("/invoices/{invoice_id}/status", response_model=schemas.InvoiceOut)
def update_invoice_status(invoice_id: str, body: schemas.StatusUpdate, db: Session = Depends(get_db)):
    invoice = invoices.update_invoice_status(db, invoice_id, body.status)
    db.commit()
    db.refresh(invoice)
    return invoice
