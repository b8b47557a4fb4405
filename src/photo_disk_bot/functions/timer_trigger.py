"""Timer trigger blueprint — keeps the default folder loaded on a warm worker."""

import logging

import azure.functions as func

from photo_disk_bot.config import load_config
from photo_disk_bot.orchestration.runtime import get_runtime

logger = logging.getLogger(__name__)

bp = func.Blueprint()


@bp.timer_trigger(
    schedule="0 */15 * * * *",
    arg_name="timer",
    run_on_startup=True,
)
def timer_trigger(timer: func.TimerRequest) -> None:
    """Scheduled trigger that makes sure the default folder is in the index.

    Runs at startup and every 15 minutes. A no-op once the folder is cached.
    """
    logger.info("Timer trigger fired")

    try:
        if timer.past_due:
            logger.warning("Timer trigger is past due")

        config = load_config()
        runtime = get_runtime(config)
        runtime.warm_up()
        logger.info(
            "Index warm-up complete — %d image(s) cached", runtime.index.count()
        )

    except Exception:
        logger.exception("Timer trigger failed")
        raise
