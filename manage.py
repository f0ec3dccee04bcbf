#!/usr/bin/env python3
"""
Case Sync — management tool

Single entry point for running the ingestion service locally.
Usage: python manage.py <command> [options]
"""

import asyncio
import json
import logging
import os
import subprocess
import sys
from typing import List

BACKEND_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "backend")


# ═══════════════════════════════════════════════════════════
#  Logging Setup
# ═══════════════════════════════════════════════════════════

class ColorFormatter(logging.Formatter):
    """Console formatter with ANSI colors and level symbols."""

    COLORS = {
        "INFO": "\033[96m",        # Cyan
        "SUCCESS": "\033[92m",     # Green
        "WARNING": "\033[93m",     # Yellow
        "ERROR": "\033[91m",       # Red
        "HEADER": "\033[95m",      # Magenta
        "BOLD": "\033[1m",
        "RESET": "\033[0m",
    }

    SYMBOLS = {
        "INFO": "→",
        "SUCCESS": "✓",
        "WARNING": "⚠",
        "ERROR": "✗",
        "STEP": "▶",
    }

    def __init__(self, use_colors: bool = True):
        super().__init__()
        self.use_colors = use_colors and sys.platform != "win32"

    def _colorize(self, text: str, color_name: str) -> str:
        if not self.use_colors:
            return text
        color = self.COLORS.get(color_name, "")
        return f"{color}{text}{self.COLORS['RESET']}" if color else text

    def format(self, record: logging.LogRecord) -> str:
        msg = str(record.msg)

        for marker in ("SUCCESS", "WARNING", "ERROR", "STEP"):
            if f"[{marker}]" in msg:
                symbol = self.SYMBOLS[marker]
                color = "INFO" if marker == "STEP" else marker
                msg = msg.replace(f"[{marker}] ", "").replace(f"[{marker}]", "")
                break
        else:
            symbol, color = self.SYMBOLS.get(record.levelname, ""), record.levelname

        if msg.startswith("==="):
            record.msg = self._colorize(msg, "HEADER")
        else:
            record.msg = self._colorize(f"{symbol} {msg}" if symbol else msg, color)
        return super().format(record)


_console_handler = logging.StreamHandler()
_console_handler.setFormatter(ColorFormatter())
logger = logging.getLogger("manage")
logger.addHandler(_console_handler)
logger.setLevel(logging.INFO)
logger.propagate = False


# ═══════════════════════════════════════════════════════════
#  Service Manager
# ═══════════════════════════════════════════════════════════

class ServiceManager:
    """Runs cycles in-process or starts the long-running processes."""

    def _run(self, cmd: List[str]) -> None:
        logger.info(f"[STEP] Running: {' '.join(cmd)}")
        try:
            subprocess.run(cmd, check=True, cwd=BACKEND_DIR)
        except subprocess.CalledProcessError as exc:
            logger.error(f"Command failed (exit {exc.returncode})")
            raise
        except KeyboardInterrupt:
            logger.info("[WARNING] Interrupted")

    # ─── In-process commands ──────────────────────────────
    def run_once(self) -> None:
        """Run a single ingestion cycle in this process (no re-arm)."""
        from casesync.core.logging import setup_logging
        from casesync.service import run_ingestion_cycle

        logger.info("=== Ingestion Cycle ===")
        setup_logging()
        result = asyncio.run(run_ingestion_cycle())
        logger.info(f"[SUCCESS] Cycle finished: {result.status}")
        print(json.dumps(result.to_dict(), indent=2))

    def lock_status(self) -> None:
        from casesync.service import read_lock_status

        status = asyncio.run(read_lock_status())
        state = "[WARNING] held" if status["locked"] else "[SUCCESS] free"
        logger.info(f"{state} (held_since={status['held_since']}, window={status['window_seconds']}s)")

    def release_lock(self) -> None:
        from casesync.service import release_lock

        logger.info("[STEP] Releasing advisory lock…")
        asyncio.run(release_lock())
        logger.info("[SUCCESS] Lock released")

    # ─── Long-running processes ───────────────────────────
    def worker(self) -> None:
        logger.info("=== Celery Worker ===")
        self._run(["celery", "-A", "casesync.tasks", "worker", "-Q", "ingestion", "--loglevel=INFO"])

    def beat(self) -> None:
        logger.info("=== Celery Beat ===")
        self._run(["celery", "-A", "casesync.tasks", "beat", "--loglevel=INFO"])

    def api(self, port: int = 8000) -> None:
        logger.info("=== API Server ===")
        self._run(["uvicorn", "casesync.main:app", "--host", "0.0.0.0", "--port", str(port)])

    def test(self) -> None:
        logger.info("=== Test Suite ===")
        self._run([sys.executable, "-m", "pytest", "tests", "-q"])


# ═══════════════════════════════════════════════════════════
#  CLI
# ═══════════════════════════════════════════════════════════

USAGE = f"""
{ColorFormatter.COLORS['HEADER']}Case Sync — Management{ColorFormatter.COLORS['RESET']}
{'═' * 50}

{ColorFormatter.COLORS['BOLD']}Usage:{ColorFormatter.COLORS['RESET']} python manage.py <command> [options]

{ColorFormatter.COLORS['BOLD']}Commands:{ColorFormatter.COLORS['RESET']}
    {ColorFormatter.COLORS['INFO']}run-once{ColorFormatter.COLORS['RESET']}        Run one ingestion cycle in-process
    {ColorFormatter.COLORS['INFO']}lock-status{ColorFormatter.COLORS['RESET']}     Show the advisory lock value
    {ColorFormatter.COLORS['WARNING']}release-lock{ColorFormatter.COLORS['RESET']}    Clear the advisory lock (only if no cycle is running)
    {ColorFormatter.COLORS['INFO']}worker{ColorFormatter.COLORS['RESET']}          Start the Celery worker
    {ColorFormatter.COLORS['INFO']}beat{ColorFormatter.COLORS['RESET']}            Start Celery beat (periodic trigger)
    {ColorFormatter.COLORS['INFO']}api{ColorFormatter.COLORS['RESET']}             Start the FastAPI server (--port=N)
    {ColorFormatter.COLORS['INFO']}test{ColorFormatter.COLORS['RESET']}            Run the test suite

{ColorFormatter.COLORS['BOLD']}Examples:{ColorFormatter.COLORS['RESET']}
    python manage.py run-once
    python manage.py api --port=8080
"""


def main() -> None:
    if len(sys.argv) < 2 or sys.argv[1] in ("-h", "--help"):
        print(USAGE)
        sys.exit(0)

    command = sys.argv[1]
    opts = sys.argv[2:]

    mgr = ServiceManager()

    try:
        if command == "run-once":
            mgr.run_once()
        elif command == "lock-status":
            mgr.lock_status()
        elif command == "release-lock":
            mgr.release_lock()
        elif command == "worker":
            mgr.worker()
        elif command == "beat":
            mgr.beat()
        elif command == "api":
            port = 8000
            for o in opts:
                if o.startswith("--port="):
                    port = int(o.split("=", 1)[1])
            mgr.api(port=port)
        elif command == "test":
            mgr.test()
        else:
            logger.error(f"Unknown command: {command}")
            print(USAGE)
            sys.exit(1)
    except Exception as exc:
        logger.error(f"Operation failed: {exc}")
        sys.exit(1)


if __name__ == "__main__":
    main()
