"""
Health check for load balancers and uptime monitors.
"""
import logging
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout

from django.db import connection, connections
from django.utils import timezone

from . import __version__
from .conf import blog_settings

logger = logging.getLogger(__name__)

STARTED_AT = time.monotonic()

HEALTHY = "healthy"
DEGRADED = "degraded"
UNHEALTHY = "unhealthy"


def ping_database():
    # Runs in a worker thread, which gets its own connection
    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
            cursor.fetchone()
    finally:
        connections.close_all()


def check_database(ping=None, timeout=None):
    """
    Return ``(status, latency_ms)``; raises on failure or timeout.
    """
    ping = ping or ping_database
    timeout = blog_settings.HEALTH_CHECK_TIMEOUT if timeout is None else timeout
    started = time.monotonic()
    pool = ThreadPoolExecutor(max_workers=1)
    try:
        pool.submit(ping).result(timeout=timeout)
    except FutureTimeout:
        raise TimeoutError("Database timeout")
    finally:
        pool.shutdown(wait=False)
    latency = int((time.monotonic() - started) * 1000)
    status = DEGRADED if latency > blog_settings.HEALTH_DEGRADED_LATENCY_MS else HEALTHY
    return status, latency


def health_status(ping=None):
    """
    Build the health document and the HTTP status to send it with.
    """
    report = {
        "status": HEALTHY,
        "timestamp": timezone.now().isoformat(),
        "version": __version__,
        "uptime": round(time.monotonic() - STARTED_AT, 3),
        "checks": {"database": {"status": "ok"}},
    }
    try:
        status, latency = check_database(ping)
    except Exception as exc:
        logger.error("Health check failed: %s", exc)
        report["status"] = UNHEALTHY
        report["checks"]["database"] = {
            "status": "error",
            "error": str(exc) or "Database connection failed",
        }
        return report, 503

    report["status"] = status
    report["checks"]["database"]["latency"] = latency
    return report, 200
