import os
from decimal import Decimal

from dotenv import load_dotenv

# Carrega o .env da raiz do projeto
load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./ordering.db")
ENV = os.getenv("ENV", "dev")
ENV_NORMALIZED = ENV.lower()
IS_DEV = ENV_NORMALIZED in {"dev", "development", "local"}
IS_TEST = ENV_NORMALIZED == "test"
IS_PROD = ENV_NORMALIZED in {"prod", "production"}

# CORS
_cors_env = os.getenv("CORS_ORIGINS", "")
CORS_ORIGINS = [origin.strip() for origin in _cors_env.split(",") if origin.strip() and origin.strip() != "*"]

if not CORS_ORIGINS and IS_DEV:
    CORS_ORIGINS = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

# Merchant defaults
DEFAULT_CURRENCY = os.getenv("DEFAULT_CURRENCY", "AUD").strip().upper() or "AUD"
DEFAULT_TIMEZONE = os.getenv("DEFAULT_TIMEZONE", "Australia/Sydney").strip() or "Australia/Sydney"

# POS custom items
POS_CUSTOM_ITEM_MAX_NAME_LENGTH = int(os.getenv("POS_CUSTOM_ITEM_MAX_NAME_LENGTH", "80"))
POS_CUSTOM_ITEM_MAX_PRICE = Decimal(os.getenv("POS_CUSTOM_ITEM_MAX_PRICE", "1000000"))

# Voucher salvo que deixou de ser elegível na edição: "drop" remove, "reject" falha a edição
DISCOUNT_REVALIDATION_POLICY = os.getenv("DISCOUNT_REVALIDATION_POLICY", "drop").strip().lower()
if DISCOUNT_REVALIDATION_POLICY not in {"drop", "reject"}:
    DISCOUNT_REVALIDATION_POLICY = "drop"

# Migrations
AUTO_APPLY_MIGRATIONS = os.getenv("AUTO_APPLY_MIGRATIONS", "").strip().lower()
