from __future__ import annotations

from ..extensions import db


class Counter(db.Model):
    """
    Named monotonic counters (product codes, invoice numbers).

    WHY: a dedicated row gives an atomic increment-and-read under
    concurrency instead of a process-global variable.
    """
    __tablename__ = "counters"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(64), nullable=False, unique=True)
    value = db.Column(db.Integer, nullable=False, default=0)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
