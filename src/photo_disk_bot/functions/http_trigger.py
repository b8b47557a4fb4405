"""HTTP trigger blueprint — health check and Telegram webhook endpoints."""

import asyncio
import json
import logging

import azure.functions as func
from telegram import Update
from telegram.ext import Application

from photo_disk_bot import __version__
from photo_disk_bot.config import AppConfig, load_config
from photo_disk_bot.orchestration.dispatcher import build_application
from photo_disk_bot.orchestration.runtime import get_runtime

logger = logging.getLogger(__name__)

bp = func.Blueprint()

SECRET_HEADER = "X-Telegram-Bot-Api-Secret-Token"

_application: Application | None = None  # type: ignore[type-arg]


async def get_application(config: AppConfig) -> Application:  # type: ignore[type-arg]
    """Return the initialised webhook Application shared by this worker."""
    global _application
    if _application is None:
        runtime = get_runtime(config)
        application = build_application(runtime, polling=False)
        await application.initialize()
        await asyncio.to_thread(runtime.warm_up)
        _application = application
        logger.info("[get_application] webhook application initialised")
    return _application


@bp.route(route="health", methods=["GET"], auth_level=func.AuthLevel.ANONYMOUS)
def health_check(req: func.HttpRequest) -> func.HttpResponse:
    """Health check endpoint.

    Returns service status and version.
    """
    logger.info("[health_check] health check requested")

    try:
        body = json.dumps({"status": "ok", "version": __version__})
        return func.HttpResponse(body, status_code=200, mimetype="application/json")

    except Exception:
        logger.error("[health_check] health check failed", exc_info=True)
        error_body = json.dumps({"status": "error", "message": "Internal server error"})
        return func.HttpResponse(error_body, status_code=500, mimetype="application/json")


@bp.route(route="telegram", methods=["POST"], auth_level=func.AuthLevel.ANONYMOUS)
async def telegram_webhook(req: func.HttpRequest) -> func.HttpResponse:
    """Telegram webhook endpoint — feeds one pushed update to the bot.

    When a webhook secret is configured, requests without the matching
    secret header are rejected with 403.
    """
    config = load_config()
    if config.webhook_secret and req.headers.get(SECRET_HEADER) != config.webhook_secret:
        logger.warning("[telegram_webhook] rejected update with bad secret token")
        return func.HttpResponse(status_code=403)

    try:
        payload = req.get_json()
    except ValueError:
        logger.warning("[telegram_webhook] request body is not JSON")
        return func.HttpResponse(status_code=400)

    try:
        application = await get_application(config)
        update = Update.de_json(payload, application.bot)
        await application.process_update(update)
        logger.info("[telegram_webhook] update processed; update_id:%s", payload.get("update_id"))
        return func.HttpResponse(
            json.dumps({"status": "ok"}), status_code=200, mimetype="application/json"
        )

    except Exception:
        logger.error("[telegram_webhook] update processing failed", exc_info=True)
        error_body = json.dumps({"status": "error", "message": "Internal server error"})
        return func.HttpResponse(error_body, status_code=500, mimetype="application/json")
