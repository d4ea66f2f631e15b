import os
import threading
import config

_tick_id = None

_GATED_SCOPES = {
    "JOBS": "LOG_JOBS",
    "TERRAIN": "LOG_STREAMING",
    "RENDER": "LOG_STREAMING",
}


def set_tick(tick_id):
    global _tick_id
    _tick_id = tick_id


def log(scope, msg, level="INFO"):
    flag = _GATED_SCOPES.get(scope)
    if level in ("INFO", "DEBUG") and flag is not None and not getattr(config, flag, True):
        return
    thread = threading.current_thread()
    tick = _tick_id
    tick_tag = f" t{tick}" if tick is not None else ""
    text = f"[{level}{tick_tag} thr{thread.name} {scope}] {msg}"
    use_color = getattr(config, "LOG_COLOR", True) and os.getenv("NO_COLOR") is None
    if use_color:
        if level == "ERROR":
            text = f"\x1b[31m{text}\x1b[0m"
        elif thread is not threading.main_thread():
            # Worker thread.
            text = f"\x1b[32m{text}\x1b[0m"
        elif level == "WARN":
            text = f"\x1b[33m{text}\x1b[0m"
    print(text)
