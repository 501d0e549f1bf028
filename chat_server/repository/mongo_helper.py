from pymongo import MongoClient
from pymongo.errors import PyMongoError
import logging

from config import config

logger = logging.getLogger(__name__)


class MongoRepositorySingleton:
    _client = None
    _db_instance = None

    @classmethod
    def get_db(cls):
        """Singleton utility to get the MongoDB database object.

        Uses MONGO_URI / CHAT_DB_NAME from config. Every operation is bounded
        by MONGO_TIMEOUT_MS. The server is pinged once on first use; if it is
        unreachable a RuntimeError is raised so the application refuses to
        start instead of serving a chat feature that cannot store anything.
        """
        if cls._db_instance is not None:
            return cls._db_instance
        mongo_uri = config.MONGO_URI
        db_name = config.CHAT_DB_NAME
        logger.info(f"[MongoRepositorySingleton] Connecting to MongoDB DB: {db_name}")
        client = MongoClient(
            mongo_uri,
            timeoutMS=config.MONGO_TIMEOUT_MS,
            serverSelectionTimeoutMS=config.MONGO_SERVER_SELECTION_TIMEOUT_MS,
            connectTimeoutMS=config.MONGO_CONNECT_TIMEOUT_MS,
        )
        try:
            client.admin.command('ping')
        except PyMongoError as e:
            client.close()
            raise RuntimeError(f"MongoDB unreachable at startup: {e}") from e
        cls._client = client
        cls._db_instance = client[db_name]
        return cls._db_instance
