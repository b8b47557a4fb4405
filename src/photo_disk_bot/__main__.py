"""Local runner — serves the bot with long polling."""

import logging

from telegram import Update

from photo_disk_bot.config import load_config
from photo_disk_bot.orchestration.dispatcher import build_application
from photo_disk_bot.orchestration.runtime import get_runtime

logger = logging.getLogger(__name__)


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    config = load_config()
    application = build_application(get_runtime(config))
    logger.info("[main] starting long polling")
    application.run_polling(allowed_updates=Update.ALL_TYPES)


if __name__ == "__main__":
    main()
