"""Tembo Auth settings read from the environment."""
import os

TEMBO_API_URL = os.environ.get("TEMBO_API_URL", "https://api.tembo.io")
TEMBO_API_TIMEOUT = float(os.environ.get("TEMBO_API_TIMEOUT", "10"))
TEMBO_AUTH_DSN = os.environ.get("TEMBO_AUTH_DSN")
