"""Entry point for the Telegram assistant bot.

Usage::

    python app.py

Required environment variables (see .env.example):
    TELEGRAM_BOT_TOKEN, LLM_PROVIDER, and the matching provider API key.
"""

import importlib
import logging
import sys

import uvicorn
from dotenv import load_dotenv

from ai_adapter import AIAdapter
from bot import build_application
from config import Config, load_config
from context_manager import ContextManager
from messenger import Messenger
from providers.base import BaseProvider
from services.habits import HabitTracker
from services.health import HealthTracker
from services.prompts import ScheduledPrompts
from services.reminders import ReminderService
from services.reports import ReportGenerator
from services.tasks import TaskService
from storage import Database
from timeutil import Clock, system_clock
from users import UserStore
from web import create_app


def setup_logging() -> None:
    """Configure structured logging to stdout."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        stream=sys.stdout,
    )
    # Reduce noise from low-level HTTP libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


# ── Provider factory ──────────────────────────────────────────────────────────

# Maps provider name → (module path, class name)
_PROVIDER_MAP: dict[str, tuple[str, str]] = {
    "openai":    ("providers.openai_provider",    "OpenAIProvider"),
    "anthropic": ("providers.anthropic_provider", "AnthropicProvider"),
}


def _create_provider(config: Config, name: str, clock: Clock) -> BaseProvider:
    """Instantiate provider *name* with its key and model from *config*."""
    mod_path, cls_name = _PROVIDER_MAP[name]
    module = importlib.import_module(mod_path)
    cls = getattr(module, cls_name)
    kwargs = {
        "api_key": config.api_key_for(name),
        "model": getattr(config, f"{name}_model"),
        "clock": clock,
    }
    if name == "openai":
        kwargs["base_url"] = config.openai_base_url
    return cls(**kwargs)


def main() -> None:
    """Load configuration, wire the services and serve the HTTP endpoints."""
    load_dotenv()
    setup_logging()
    logger = logging.getLogger(__name__)

    try:
        config = load_config()
    except ValueError as exc:
        logging.critical("Configuration error: %s", exc)
        sys.exit(1)

    clock = system_clock(config.tz)
    names = [config.llm_provider] + ([config.fallback_provider] if config.fallback_provider else [])
    providers = {name: _create_provider(config, name, clock) for name in names}
    adapter = AIAdapter(providers, config.llm_provider, config.fallback_provider, clock)

    db = Database(config.database_path)
    users = UserStore(db, clock)
    contexts = ContextManager(
        db, clock,
        max_turns=config.context_messages,
        retention=config.conversation_retention,
    )
    reminders = ReminderService(db, adapter, clock, config.tz, config.confidence_threshold)
    habits = HabitTracker(db, clock)
    health = HealthTracker(db, clock)
    tasks = TaskService(db, clock)
    reports = ReportGenerator(db, habits, tasks, reminders, health, clock)

    application = build_application(
        config, users, contexts, adapter, reminders, habits, health, tasks, reports
    )
    messenger = Messenger(application.bot)
    prompts = ScheduledPrompts(users, messenger, clock)
    web_app = create_app(application, config, reminders, prompts, messenger)

    logger.info(
        "Bot starting: provider=%s fallback=%s db=%s timezone=%s",
        config.llm_provider,
        config.fallback_provider or "none",
        config.database_path,
        config.timezone,
    )
    uvicorn.run(web_app, host=config.host, port=config.port, log_level="info")


if __name__ == "__main__":
    main()
