"""
Vercel entry point for the SupportFlow API
"""
import os

# Set environment variables for serverless
os.environ.setdefault("ENVIRONMENT", "production")
os.environ.setdefault("WORKER_INTERVAL_SECONDS", "0")  # Worker is driven by the cron endpoint
os.environ.setdefault("UPLOAD_DIR", "/tmp/uploads")

from mangum import Mangum  # noqa: E402

from supportflow.main import app  # noqa: E402

# Lifespan runs per cold start so the service container is built
handler = Mangum(app, lifespan="auto")
