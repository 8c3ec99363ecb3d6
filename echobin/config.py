import os

# --- Config ---
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "5000"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "info")
STARTUP_DELAY_MS = int(os.getenv("STARTUP_DELAY_MS", "0"))
