"""
TATAME FastAPI Service - Startup Script

Loads environment variables from .env and starts uvicorn server.

Usage:
    python scripts/dev/run_api.py
"""

import os
from pathlib import Path

# Load .env file
from dotenv import load_dotenv

repo_root = Path(__file__).resolve().parents[2]
env_path = repo_root / ".env"
load_dotenv(env_path)

for name in ("JWT_SECRET", "ENCRYPTION_KEY"):
    if not os.getenv(name, "").strip():
        print(f"WARNING: {name} not set in .env")

if not os.getenv("BREVO_API_KEY", "").strip():
    print("WARNING: BREVO_API_KEY not set in .env - emails will not be sent")

# Start uvicorn
if __name__ == "__main__":
    import uvicorn

    from tatame.shared.settings import HTTP_HOST, HTTP_PORT

    print("\nStarting TATAME FastAPI service...")
    uvicorn.run(
        "tatame.api.main:app",
        host=HTTP_HOST,
        port=HTTP_PORT,
        reload=True,
        log_level="info",
    )
