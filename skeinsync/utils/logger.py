# skeinsync/utils/logger.py
import os, sys, time

from flask import current_app, has_app_context

LEVELS = {"DEBUG": 10, "INFO": 20, "WARN": 30, "ERROR": 40, "NONE": 100}


def threshold() -> int:
    """Inside the app the LOG_LEVEL config wins; outside it, the environment."""
    name = current_app.config.get("LOG_LEVEL") if has_app_context() else None
    name = (name or os.getenv("LOG_LEVEL") or "INFO").upper()
    return LEVELS.get(name, LEVELS["INFO"])


def log(level: str, msg: str, **context):
    severity = LEVELS[level]
    if severity < threshold():
        return
    if context:
        msg = f"{msg} (" + " ".join(f"{k}={v}" for k, v in context.items()) + ")"
    stream = sys.stderr if severity >= LEVELS["ERROR"] else sys.stdout
    print(f"[{time.strftime('%H:%M:%S')}][{level}] {msg}", file=stream)


def debug(msg, **context): log("DEBUG", msg, **context)
def info(msg, **context):  log("INFO", msg, **context)
def warn(msg, **context):  log("WARN", msg, **context)
def error(msg, **context): log("ERROR", msg, **context)
