import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./healthpal.db")

# Auth - access tokens are issued by the identity service and shared with us
JWT_ACCESS_SECRET = os.getenv("JWT_ACCESS_SECRET")
if not JWT_ACCESS_SECRET:
    import warnings

    warnings.warn(
        "JWT_ACCESS_SECRET not set! Using insecure default - DO NOT USE IN PRODUCTION",
        RuntimeWarning,
        stacklevel=2,
    )
    JWT_ACCESS_SECRET = "INSECURE-DEV-KEY-CHANGE-IN-PRODUCTION"  # noqa: S105 - Dev fallback only
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_ACCESS_EXPIRE_MINUTES = int(os.getenv("JWT_ACCESS_EXPIRE_MINUTES", "15"))

# VNPay Configuration
VNPAY_TMN_CODE = os.getenv("VNPAY_TMN_CODE", "")
VNPAY_HASH_SECRET = os.getenv("VNPAY_HASH_SECRET", "")
VNPAY_URL = os.getenv("VNPAY_URL", "https://sandbox.vnpayment.vn/paymentv2/vpcpay.html")
VNPAY_RETURN_URL = os.getenv("VNPAY_RETURN_URL", "http://localhost:3000/api/payments/vnpay/callback")
VNPAY_IPN_URL = os.getenv("VNPAY_IPN_URL", "")
VNPAY_EXPIRE_MINUTES = int(os.getenv("VNPAY_EXPIRE_MINUTES", "15"))

# Frontend base URL for redirects
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")

# Resend Email Configuration
RESEND_API_KEY = os.getenv("RESEND_API_KEY")
EMAIL_FROM_ADDRESS = os.getenv("EMAIL_FROM_ADDRESS", "HealthPal <noreply@healthpal.vn>")

# Redis (rate limiting + arq queue)
REDIS_URL = os.getenv("REDIS_URL")
REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
REDIS_PORT = int(os.getenv("REDIS_PORT", "6379"))
REDIS_PASSWORD = os.getenv("REDIS_PASSWORD")
REDIS_SSL = os.getenv("REDIS_SSL", "false").lower() == "true"

# Reminder jobs are enqueued on confirmation; disable where no worker runs
REMINDERS_ENABLED = os.getenv("REMINDERS_ENABLED", "true").lower() == "true"

# Relay socket events published by the worker to this process's connections
REALTIME_RELAY_ENABLED = os.getenv("REALTIME_RELAY_ENABLED", "true").lower() == "true"

# Payment initiation rate limit (per client IP)
PAYMENT_RATE_LIMIT = int(os.getenv("PAYMENT_RATE_LIMIT", "10"))
PAYMENT_RATE_WINDOW_SECONDS = int(os.getenv("PAYMENT_RATE_WINDOW_SECONDS", "900"))

# Booking
# Appointment times and VNPay timestamps are wall-clock times in this zone
APP_TIMEZONE = os.getenv("APP_TIMEZONE", "Asia/Ho_Chi_Minh")
SLOT_DURATION_MINUTES = int(os.getenv("SLOT_DURATION_MINUTES", "30"))
