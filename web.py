"""HTTP surface: Telegram webhook, scheduler trigger and health check."""

import hmac
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Query, Request
from fastapi.responses import JSONResponse
from telegram import Update
from telegram.ext import Application

from config import Config
from cron import run_cron
from messenger import Messenger
from services.prompts import ScheduledPrompts
from services.reminders import ReminderService

logger = logging.getLogger(__name__)

WEBHOOK_SECRET_HEADER = "X-Telegram-Bot-Api-Secret-Token"
CRON_SECRET_HEADER = "X-Cron-Secret"


def _authorized(request: Request, header: str, secret: str | None) -> bool:
    if not secret:
        return True
    supplied = request.headers.get(header, "")
    return hmac.compare_digest(supplied.encode(), secret.encode())


def create_app(
    application: Application,
    config: Config,
    reminders: ReminderService,
    prompts: ScheduledPrompts,
    messenger: Messenger,
) -> FastAPI:
    """Wrap the PTB *application* in a FastAPI app.

    The application is initialised on startup and shut down on exit; updates
    arrive only through ``POST /webhook``.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await application.initialize()
        logger.info("Telegram application initialised")
        try:
            yield
        finally:
            await application.shutdown()
            logger.info("Telegram application shut down")

    app = FastAPI(lifespan=lifespan, title="Telegram personal assistant")

    @app.post("/webhook")
    async def webhook(request: Request) -> JSONResponse:
        if not _authorized(request, WEBHOOK_SECRET_HEADER, config.webhook_secret):
            logger.warning("Rejected webhook call with a bad secret token")
            return JSONResponse({"ok": False, "error": "forbidden"}, status_code=403)
        try:
            data = await request.json()
        except ValueError:
            return JSONResponse({"ok": False, "error": "invalid JSON"}, status_code=400)
        if not isinstance(data, dict):
            return JSONResponse({"ok": False, "error": "expected an object"}, status_code=400)

        try:
            update = Update.de_json(data, application.bot)
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("Rejected malformed update: %s", exc)
            return JSONResponse({"ok": False, "error": "invalid update"}, status_code=400)
        try:
            await application.process_update(update)
        except Exception:
            logger.exception("Failed to process update %s", data.get("update_id"))
            return JSONResponse({"ok": False})
        return JSONResponse({"ok": True})

    @app.post("/cron")
    async def cron(request: Request, task: list[str] = Query(default=[])) -> JSONResponse:
        if not _authorized(request, CRON_SECRET_HEADER, config.cron_secret):
            logger.warning("Rejected cron call with a bad secret")
            return JSONResponse({"ok": False, "error": "forbidden"}, status_code=403)
        try:
            summary = await run_cron(reminders, prompts, messenger, task)
        except Exception as exc:
            logger.exception("Cron run failed")
            return JSONResponse({"ok": False, "error": str(exc)}, status_code=500)
        return JSONResponse({"ok": True, **summary})

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    return app
