"""
Health Check Router
Liveness plus a connectivity check of the feed tables
"""
from fastapi import APIRouter
from datetime import datetime
import logging
from botocore.exceptions import ClientError

from app.core.config import settings
from app.db import dynamo

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/health")
async def health_check():
    """
    Health check endpoint.
    Returns API status.
    """
    return {
        "status": "healthy",
        "service": settings.PROJECT_NAME,
        "timestamp": datetime.utcnow().isoformat()
    }


@router.get("/status")
def feeds_status():
    """
    Check that every DynamoDB table backing an insight feed is reachable.
    """
    tables = {}
    for feed, table in dynamo.FEED_TABLES.items():
        try:
            table.scan(Limit=1)
            tables[feed] = {"name": table.name, "status": "accessible"}
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "Unknown")
            tables[feed] = {"name": table.name, "status": "error", "error": f"{error_code}: {str(e)}"}
            logger.error(f"Feed table check failed for {feed}: {str(e)}")
        except Exception as e:
            tables[feed] = {"name": table.name, "status": "error", "error": str(e)}
            logger.error(f"Feed table check failed for {feed}: {str(e)}")

    all_connected = all(table["status"] == "accessible" for table in tables.values())
    return {
        "timestamp": datetime.utcnow().isoformat(),
        "region": settings.DYNAMO_REGION,
        "feeds": tables,
        "overall_status": "healthy" if all_connected else "degraded",
    }
