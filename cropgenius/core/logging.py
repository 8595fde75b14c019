import logging
import sys
import asyncio

from cropgenius.core.context import user_id_var
from cropgenius.core.events import event_manager
from cropgenius.core.settings import settings


class ContextInjectingFilter(logging.Filter):
    """
    Injects user_id from contextvars into the log record.
    """
    def filter(self, record):
        record.user_id = user_id_var.get()
        return True


class WebSocketLoggingHandler(logging.Handler):
    """
    Streams a farmer's own log lines to their open app sessions.
    """
    def emit(self, record):
        try:
            user_id = getattr(record, 'user_id', None)
            if not user_id:
                return

            # Never echo the event manager's own records back through it
            if record.name.startswith("cropgenius.core.events"):
                return

            msg = self.format(record)

            try:
                loop = asyncio.get_running_loop()
                if loop.is_running():
                    payload = {
                        "type": "log",
                        "level": record.levelname,
                        "message": msg,
                        "timestamp": record.created,
                        "account_id": user_id
                    }
                    loop.create_task(event_manager.broadcast(payload))
            except RuntimeError:
                # No running loop (startup, shutdown, worker thread)
                pass

        except Exception:
            self.handleError(record)


def setup_api_logger(level: str = None):
    """Setup logging for the CropGenius API"""

    level = getattr(logging, (level or settings.LOG_LEVEL), logging.INFO)

    logger = logging.getLogger()
    logger.setLevel(level)

    # Already configured (create_app called more than once)
    if any(isinstance(h, WebSocketLoggingHandler) for h in logger.handlers):
        return logger

    # 1. Console Handler
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)

    formatter = logging.Formatter(
        '%(asctime)s | %(levelname)s | %(name)s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    console_handler.setFormatter(formatter)
    console_handler.addFilter(ContextInjectingFilter())
    logger.addHandler(console_handler)

    # 2. Context Filter (Injects user_id)
    logger.addFilter(ContextInjectingFilter())

    # 3. WebSocket Handler (streams to the farmer's app)
    ws_handler = WebSocketLoggingHandler()
    ws_handler.setLevel(logging.INFO)
    ws_handler.setFormatter(formatter)
    ws_handler.addFilter(ContextInjectingFilter())
    logger.addHandler(ws_handler)

    return logger
