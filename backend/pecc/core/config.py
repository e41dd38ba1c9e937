import os
from pathlib import Path
from dotenv import load_dotenv

ROOT_DIR = Path(__file__).parent.parent.parent.parent
load_dotenv(ROOT_DIR / '.env')

# App Version
APP_VERSION = "1.0.0"
APP_NAME = "Studio PECC"

# Document store
STORE_BACKEND = os.environ.get('STORE_BACKEND', 'mongo')  # 'mongo' or 'memory'
MONGO_URL = os.environ.get('MONGO_URL', 'mongodb://localhost:27017')
DB_NAME = os.environ.get('DB_NAME', 'studio_pecc')

# JWT
JWT_SECRET = os.environ.get('JWT_SECRET', 'your-super-secret-jwt-key-change-in-production')
JWT_ALGORITHM = "HS256"
JWT_EXPIRATION_HOURS = 24

# CORS
CORS_ORIGINS = [o.strip() for o in os.environ.get('CORS_ORIGINS', '*').split(',') if o.strip()]

# PagBank (PIX checkout)
PAGBANK_ACCESS_TOKEN = os.environ.get('PAGBANK_ACCESS_TOKEN', '')
PAGBANK_ENV = os.environ.get('PAGBANK_ENV', 'sandbox')
# PagBank refuses orders without a customer tax id; we do not collect one yet
PAGBANK_TAX_ID = os.environ.get('PAGBANK_TAX_ID', '71143407105')

# Public URL, reserved for gateway notification urls
PUBLIC_APP_URL = os.environ.get('PUBLIC_APP_URL', '')

# Plans Configuration
PLAN_NONE = "none"
PLAN_BASIC = "basic"
PLAN_PRO = "pro"
PAID_PLANS = (PLAN_BASIC, PLAN_PRO)

PLANS = {
    "basic": {
        "id": "basic",
        "name": "Básico",
        "price": 9.99,
        "currency": "BRL",
        "features": [
            "Premium lessons",
            "Basic tools",
            "Members-only downloads",
        ],
        "sort_order": 0
    },
    "pro": {
        "id": "pro",
        "name": "Pro",
        "price": 29.00,
        "currency": "BRL",
        "features": [
            "Everything in Básico",
            "Pro tools",
            "Priority support",
            "Early access to new content",
        ],
        "sort_order": 1
    }
}

# Ranks (progression labels shown on profiles and chat)
DEFAULT_RANK = "iniciante"
RANKS = {
    "iniciante": "Iniciante",
    "modder_junior": "Modder Júnior",
    "modder_pleno": "Modder Pleno",
    "modder_senior": "Modder Sênior",
    "especialista_samp": "Especialista em SAMP",
    "master_modder": "Master Modder",
}

# Redemption codes
CODE_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"
CODE_LENGTH = 12
CODE_GROUP_SIZE = 4
MAX_CODES_PER_BATCH = 50
MAX_CODE_DURATION_DAYS = 365

# Contracts
CANCELLATION_TOKEN = "CANCELAR"
CANCEL_COMMAND = "/cancelar"

# Support bot identity used for automatic ticket messages
SUPPORT_BOT = {
    "uid": "bot",
    "name": "Assistente de Suporte",
    "rank": None,
    "is_admin": True
}
