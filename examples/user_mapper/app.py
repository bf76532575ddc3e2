import asyncio
import json
from pathlib import Path

from mappers import UserMapper
from models import User

from pybatis import (
    NotFoundException,
    UnresolvedBindingException,
    configure_logging,
    get_logger,
    initialize_database,
)
from pybatis.config import ConfigurationProperties, log_config_sources
from pybatis.core.instrumentation import get_instrumentation
from pybatis.core.metrics_formatters import format_json
from pybatis.data import find_unbound_operations

BASE_DIR = Path(__file__).parent

logger = get_logger("example")


async def main():
    config = ConfigurationProperties(config_dir=BASE_DIR)
    configure_logging(config.get("logging.level"), config.get("logging.format"))
    log_config_sources(config, logger)

    adapter = await initialize_database(config, base_dir=BASE_DIR)
    logger.info(f"Unbound operations: {find_unbound_operations(UserMapper)}")

    users = UserMapper()
    await users.insert(User(id=1, name="Alice"))
    bob = User(name="Bob")
    await users.insert(bob)
    logger.info(f"Bob was assigned id {bob.id}")

    bob.name = "Robert"
    await users.update(bob)
    logger.info(f"All users: {await users.find_all()}")
    logger.info(f"User 1: {await users.find_by_id(1)}")
    logger.info(f"Count: {await users.count()}")
    logger.info(f"Names by length: {await users.count_by_name_length()}")

    try:
        await users.update(User(id=99, name="Nobody"))
    except NotFoundException as e:
        logger.info(f"Expected: {e}")

    try:
        await users.find_by_name("Alice")
    except UnresolvedBindingException as e:
        logger.info(f"Expected: {e}")

    logger.info(f"Deleted {await users.delete_by_id(1)} row(s)")
    logger.info(f"Deleted {await users.delete_by_id(1)} row(s)")

    print(json.dumps(format_json(get_instrumentation().storage), indent=2))
    await adapter.disconnect()


if __name__ == "__main__":
    asyncio.run(main())
