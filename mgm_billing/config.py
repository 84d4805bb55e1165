import os

from dotenv import load_dotenv

load_dotenv()


def _env(name, default=None):
    raw = os.getenv(name)
    if raw is None:
        return default
    raw = raw.strip()
    return raw if raw else default


class Config:
    SQLALCHEMY_DATABASE_URI = _env("DATABASE_URL", "sqlite:///jewellery_billing.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SECRET_KEY = _env("SECRET_KEY", "change-me")

    TIMEZONE = _env("TIMEZONE", "Asia/Kolkata")
    DEFAULT_GST_PERCENTAGE = _env("DEFAULT_GST_PERCENTAGE", "3")
    RECEIPT_FOLDER = _env("RECEIPT_FOLDER", "generated_bills")
    LOG_LEVEL = (_env("LOG_LEVEL", "INFO")).upper()

    SHOP_NAME = _env("SHOP_NAME", "MGM JEWELLERS")
    SHOP_ADDRESS = _env(
        "SHOP_ADDRESS",
        "326, 1, Rajapalayam Main Road, Gomathiyapuram, Sankarankoil, Tamil Nadu 627756",
    )
    SHOP_GSTIN = _env("SHOP_GSTIN", "")
    SHOP_MOBILE = _env("SHOP_MOBILE", "")
