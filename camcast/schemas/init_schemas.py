from camcast.app_config import get_app_environ_config
from camcast.schemas.init import init_beanie_odm
from camcast.shared.storage.mongo import get_mongo_client


async def init_schema():
    app_config = get_app_environ_config()
    mongo_client = get_mongo_client(app_config.CAMCAST_MONGO_LABEL)
    await init_beanie_odm(mongo_client, app_config.CAMCAST_DATABASE)


if __name__ == "__main__":
    import asyncio

    asyncio.run(init_schema())
