from fastapi import APIRouter, Depends, Request, Response
import redis
from sqlalchemy import text
from sqlalchemy.orm import Session

from pixshop.core.config import settings
from pixshop.db.session import get_db


router = APIRouter()


@router.get("/health")
def health() -> dict:
    """Liveness check - always returns 200 if app is running."""
    return {"status": "ok"}


@router.get("/ready")
def readiness(request: Request, response: Response, db: Session = Depends(get_db)) -> dict:
    """Readiness check - 503 if Postgres or Redis is unavailable. Reports the PIX gateway mode."""
    gateway = getattr(request.app.state, "pix_gateway", None)
    pix_mode = gateway.mode if gateway is not None else None
    try:
        db.execute(text("SELECT 1"))

        redis_client = redis.Redis.from_url(settings.redis_url, decode_responses=True)
        redis_client.ping()

        return {"status": "ready", "pix_mode": pix_mode}
    except Exception as e:
        response.status_code = 503
        return {"status": "not_ready", "pix_mode": pix_mode, "error": str(e)}
