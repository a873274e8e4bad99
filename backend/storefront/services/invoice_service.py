from __future__ import annotations

from ..errors import ForbiddenError, NotFoundError
from ..extensions import db
from ..models import Invoice, User


def _newest_first(query):
    return query.order_by(Invoice.created_at.desc(), Invoice.id.desc())


def list_invoices_for_user(user_id: int) -> list[Invoice]:
    return _newest_first(db.session.query(Invoice).filter(Invoice.user_id == user_id)).all()


def list_all_invoices() -> list[Invoice]:
    return _newest_first(db.session.query(Invoice)).all()


def get_invoice(invoice_id: int) -> Invoice:
    invoice = db.session.get(Invoice, invoice_id)
    if invoice is None:
        raise NotFoundError(f"Invoice not found: {invoice_id}")
    return invoice


def get_invoice_by_number(invoice_number: str) -> Invoice:
    invoice = db.session.query(Invoice).filter_by(invoice_number=invoice_number).one_or_none()
    if invoice is None:
        raise NotFoundError(f"Invoice not found: {invoice_number}")
    return invoice


def get_invoice_for(invoice_id: int, user: User) -> Invoice:
    """
    Owner or admin only.

    Resolution runs before the ownership check so an unknown id is a 404
    for everyone.
    """
    invoice = get_invoice(invoice_id)
    if invoice.user_id != user.id and not user.is_admin:
        raise ForbiddenError("You do not have access to this invoice")
    return invoice
