"""FastAPI entry point for the DORA metrics API.

Run with: uvicorn api_main:app --reload
"""

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

from dora_metrics.api.app import app  # noqa: E402

__all__ = ["app"]
