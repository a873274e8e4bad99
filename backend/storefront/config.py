# backend/storefront/config.py
from __future__ import annotations
import os


# Prices are tax-inclusive; invoices reverse-derive GST from the stored total.
TAX_RATE = 0.18

# Sequential display code for products, zero padded.
PRODUCT_CODE_WIDTH = 13

COMPANY = {
    "name": "SHREE MOBILES",
    "initials": "SM",
    "address_lines": (
        "123 Tech Plaza, MG Road",
        "Mumbai, Maharashtra 400001",
    ),
    "gstin": "27AAAAA0000A1Z5",
    "email": "billing@shreemobiles.in",
}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/storefront.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///storefront.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    FRONTEND_URL = os.environ.get("FRONTEND_URL", "http://localhost:5173")

    # Bearer tokens expire this long after sign-in
    SESSION_ABSOLUTE_HOURS = int(os.environ.get("SESSION_ABSOLUTE_HOURS", "168"))

    INVOICE_PREFIX = os.environ.get("INVOICE_PREFIX", "INV")
