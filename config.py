import os
from dotenv import load_dotenv

load_dotenv()

API_KEY = os.getenv('GEMINI_API_KEY')
GEMINI_MODEL = os.getenv('GEMINI_MODEL', 'gemini-1.5-flash')
API_URL = f"https://generativelanguage.googleapis.com/v1beta/models/{GEMINI_MODEL}:generateContent?key={API_KEY}"
REDIS_URL = os.getenv('REDIS_URL', 'redis://localhost:6379')
DATABASE_URL = os.getenv('DATABASE_URL')
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')

# Transient session store lifetimes (seconds)
DRAFT_TTL_SEC = int(os.getenv('DRAFT_TTL_SEC', '86400'))
HANDOFF_TTL_SEC = int(os.getenv('HANDOFF_TTL_SEC', '86400'))

# Interview runners untouched for this long are released
RUNNER_IDLE_TTL_SEC = int(os.getenv('RUNNER_IDLE_TTL_SEC', '1800'))
