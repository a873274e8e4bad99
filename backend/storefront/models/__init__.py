from .auth import User, SessionToken, ROLE_USER, ROLE_ADMIN, ROLES
from .counters import Counter
from .offers import Offer
from .catalog import Product, ProductAppliedOffer
from .invoices import Invoice, InvoiceItem, InvoiceItemOffer, INVOICE_STATUSES

__all__ = [
    'User', 'SessionToken', 'ROLE_USER', 'ROLE_ADMIN', 'ROLES',
    'Counter',
    'Offer',
    'Product', 'ProductAppliedOffer',
    'Invoice', 'InvoiceItem', 'InvoiceItemOffer', 'INVOICE_STATUSES',
]
