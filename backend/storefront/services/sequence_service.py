# Overview: Atomic named counters backing product codes and invoice numbers.

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Counter


PRODUCT_CODE_COUNTER = "product_code"
INVOICE_NUMBER_COUNTER = "invoice_number"


def next_value(name: str) -> int:
    """
    Atomically increment counter `name` and return the new value.

    Runs inside the caller's transaction and does not commit: the increment
    is kept or discarded together with whatever it numbers. The UPDATE takes
    the row lock, so concurrent callers serialize on it.
    """
    stmt = (
        update(Counter)
        .where(Counter.name == name)
        .values(value=Counter.value + 1)
        .execution_options(synchronize_session=False)
    )

    result = db.session.execute(stmt)
    if not result.rowcount:
        try:
            with db.session.begin_nested():
                db.session.add(Counter(name=name, value=1))
            return 1
        except IntegrityError:
            # Another transaction created the row first
            result = db.session.execute(stmt)
            if not result.rowcount:
                raise

    return db.session.query(Counter.value).filter_by(name=name).scalar()
