from motor.motor_asyncio import AsyncIOMotorClient

import config

client = None


def get_client():
    global client
    if client is None:
        client = AsyncIOMotorClient(
            config.MONGO_URL,
            serverSelectionTimeoutMS=5000,
            connectTimeoutMS=5000,
        )
    return client


def get_db():
    return get_client()[config.MONGO_DB_NAME]


def get_storage_collection():
    return get_db()[config.STORAGE_COLLECTION]
