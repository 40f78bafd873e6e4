"""
Service configuration, read once from the environment.

FSM_HOST / FSM_PORT          where uvicorn binds (127.0.0.1:8765)
FSM_AUTOSAVE_PATH            JSON snapshot file; unset disables auto-save
FSM_CANVAS_WIDTH / _HEIGHT   viewport used for exports (800 x 600)
FSM_LOG_LEVEL                logging level for `fsm-designer serve` (INFO)
"""
import os
from pathlib import Path
from typing import Optional


HOST = os.environ.get("FSM_HOST", "127.0.0.1")
PORT = int(os.environ.get("FSM_PORT", "8765"))

_autosave = os.environ.get("FSM_AUTOSAVE_PATH")
AUTOSAVE_PATH: Optional[Path] = Path(_autosave).expanduser() if _autosave else None

CANVAS_WIDTH = int(os.environ.get("FSM_CANVAS_WIDTH", "800"))
CANVAS_HEIGHT = int(os.environ.get("FSM_CANVAS_HEIGHT", "600"))

LOG_LEVEL = os.environ.get("FSM_LOG_LEVEL", "INFO").upper()

API_BASE = f"http://{HOST}:{PORT}/api"
