# storefront/utils/settings.py
import os
from dotenv import load_dotenv

load_dotenv()

STORE_API_URL = os.getenv("STORE_API_URL", "http://localhost:3000/api")
REDIS_URL = os.getenv("REDIS_URL", "redis://redis:6379/0")
CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", "redis://redis:6379/1")
CELERY_RESULT_BACKEND = os.getenv("CELERY_RESULT_BACKEND", "redis://redis:6379/2")

CART_STORAGE_KEY = os.getenv("CART_STORAGE_KEY", "fathom_cart")

HTTP_TIMEOUT_SECONDS = float(os.getenv("HTTP_TIMEOUT_SECONDS", 10))
#bounded wait on /payment/verify, a stuck verification is reported as rejected
VERIFY_TIMEOUT_SECONDS = float(os.getenv("VERIFY_TIMEOUT_SECONDS", 30))

CURRENCY = os.getenv("CURRENCY", "INR")

RAZORPAY_KEY_ID = os.getenv("RAZORPAY_KEY_ID", "")
RAZORPAY_KEY_SECRET = os.getenv("RAZORPAY_KEY_SECRET", "")
RAZORPAY_WEBHOOK_SECRET = os.getenv("RAZORPAY_WEBHOOK_SECRET", "")

EMAILJS_API_URL = os.getenv("EMAILJS_API_URL", "https://api.emailjs.com/api/v1.0/email/send")
EMAILJS_SERVICE_ID = os.getenv("EMAILJS_SERVICE_ID", "")
EMAILJS_TEMPLATE_ID = os.getenv("EMAILJS_TEMPLATE_ID", "")
EMAILJS_PUBLIC_KEY = os.getenv("EMAILJS_PUBLIC_KEY", "")
CONTACT_INBOX = os.getenv("CONTACT_INBOX", "assist@fathomlegal.com")
SUPPORT_EMAIL = os.getenv("SUPPORT_EMAIL", CONTACT_INBOX)

DOWNLOAD_DIR = os.getenv("DOWNLOAD_DIR", "downloads")
