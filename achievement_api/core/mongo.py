# achievement_api/core/mongo.py
import logging

from beanie import init_beanie
from motor.motor_asyncio import AsyncIOMotorClient

from achievement_api.config import settings
from achievement_api.models.achievement_detail import AchievementDetail

logger = logging.getLogger(__name__)


async def init_mongo(url: str = None, database: str = None) -> AsyncIOMotorClient:
    """Connect the document store and register Beanie documents."""
    client = AsyncIOMotorClient(url or settings.MONGODB_URL, uuidRepresentation="standard")
    await init_beanie(
        database=client[database or settings.MONGODB_DB],
        document_models=[AchievementDetail],
    )
    logger.info("document store ready db=%s", database or settings.MONGODB_DB)
    return client
