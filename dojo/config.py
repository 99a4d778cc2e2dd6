import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./dojo.db")

# Supabase Auth - access tokens are HS256 JWTs signed with the project JWT secret
SUPABASE_JWT_SECRET = os.getenv("SUPABASE_JWT_SECRET")
SUPABASE_JWT_AUDIENCE = os.getenv("SUPABASE_JWT_AUDIENCE", "authenticated")

# Security - CRITICAL: No default secret key in production
SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    import warnings

    warnings.warn(
        "SECRET_KEY not set! Using insecure default - DO NOT USE IN PRODUCTION", RuntimeWarning, stacklevel=2
    )
    SECRET_KEY = "INSECURE-DEV-KEY-CHANGE-IN-PRODUCTION"  # noqa: S105 - Dev fallback only

# Frontend base URL for links in emails
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")

# School branding used in emails and receipts
SCHOOL_NAME = os.getenv("SCHOOL_NAME", "Karate Dojo")
CURRENCY = os.getenv("CURRENCY", "CAD")

# Payment provider: "stripe", "square" or "mock"
PAYMENT_PROVIDER = os.getenv("PAYMENT_PROVIDER", "stripe").lower()

# Stripe Configuration
STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
STRIPE_PUBLISHABLE_KEY = os.getenv("STRIPE_PUBLISHABLE_KEY")
STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET")

# Square Configuration
SQUARE_ENVIRONMENT = os.getenv("SQUARE_ENVIRONMENT", "sandbox")  # sandbox or production
SQUARE_ACCESS_TOKEN = os.getenv("SQUARE_ACCESS_TOKEN")
SQUARE_APPLICATION_ID = os.getenv("SQUARE_APPLICATION_ID")
SQUARE_LOCATION_ID = os.getenv("SQUARE_LOCATION_ID")
SQUARE_WEBHOOK_SIGNATURE_KEY = os.getenv(
    "SQUARE_WEBHOOK_SIGNATURE_KEY"
)  # Webhook signature key from Square Dashboard
# Square signs notification_url + body, so the public URL must match the subscription exactly
SQUARE_WEBHOOK_URL = os.getenv("SQUARE_WEBHOOK_URL")

# Paid-until business rules
PAYMENT_GRACE_PERIOD_DAYS = int(os.getenv("PAYMENT_GRACE_PERIOD_DAYS", "7"))
PAYMENT_ATTENDANCE_LOOKBACK_DAYS = int(os.getenv("PAYMENT_ATTENDANCE_LOOKBACK_DAYS", "30"))

# Resend Email Configuration
RESEND_API_KEY = os.getenv("RESEND_API_KEY")
EMAIL_FROM_ADDRESS = os.getenv("EMAIL_FROM_ADDRESS", "Karate Dojo <noreply@example.com>")
ADMIN_EMAIL = os.getenv("ADMIN_EMAIL")

# Web Push (VAPID) Configuration
VAPID_PRIVATE_KEY = os.getenv("VAPID_PRIVATE_KEY")
VAPID_PUBLIC_KEY = os.getenv("VAPID_PUBLIC_KEY")
VAPID_CLAIMS_EMAIL = os.getenv("VAPID_CLAIMS_EMAIL", "admin@example.com")
