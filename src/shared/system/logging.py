"""
Centralized Logger with Rich Console
====================================
Static logging facade used across the solver.

Usage:
    from src.shared.system.logging import Logger

    Logger.configure(log_dir="logs")
    Logger.info("[SETTLE] Sending send_funds_to_user")
    Logger.success("[JUPITER] Swap confirmed")
    Logger.warning("Something concerning")
    Logger.error("Something broke")
    Logger.section("Intent 42")
"""

import os
import logging
from datetime import datetime
from logging.handlers import RotatingFileHandler
from typing import Optional

from rich.console import Console
from rich.text import Text

file_logger = logging.getLogger("IntentSolver")
file_logger.setLevel(logging.DEBUG)
file_logger.propagate = False
file_logger.addHandler(logging.NullHandler())


# =============================================================================
# SOURCE ICONS (for visual scanning)
# =============================================================================

SOURCE_ICONS = {
    "SYSTEM": "🛸",
    "SOLVER": "🧭",
    "INTENT": "📨",
    "SETTLE": "🔐",
    "JUPITER": "🪐",
    "BALANCE": "💵",
    "ACCOUNT": "🏦",
    "PNL": "📋",
}

# Level colors for Rich
LEVEL_STYLES = {
    "INFO": "cyan",
    "SUCCESS": "green bold",
    "WARNING": "yellow",
    "ERROR": "red bold",
    "DEBUG": "dim",
    "CRITICAL": "red bold reverse",
    "SECTION": "magenta bold",
}

_console = Console(stderr=True)


# =============================================================================
# LOGGER CLASS
# =============================================================================

class Logger:
    """
    Centralized logger with Rich console output.

    - Color-coded console lines (timestamp | level | source | message)
    - Optional rotating per-run file log (see configure)
    - [SOURCE] prefix parsing for icon tagging
    """

    _silent_mode = False
    _log_file: Optional[str] = None

    @staticmethod
    def configure(log_dir: Optional[str] = None, silent: bool = False) -> Optional[str]:
        """
        Attach a per-run rotating file handler and set console silence.

        Returns the log file path (None when no log_dir given).
        """
        Logger._silent_mode = silent
        if not log_dir:
            return None

        os.makedirs(log_dir, exist_ok=True)
        run_id = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_file = os.path.join(log_dir, f"solver_{run_id}.log")

        for old in [h for h in file_logger.handlers if not isinstance(h, logging.NullHandler)]:
            file_logger.removeHandler(old)
            old.close()

        handler = RotatingFileHandler(log_file, maxBytes=5 * 1024 * 1024, backupCount=3, encoding="utf-8")
        handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s", datefmt="%Y-%m-%d %H:%M:%S"))
        file_logger.addHandler(handler)
        Logger._log_file = log_file
        return log_file

    @staticmethod
    def _timestamp() -> str:
        """High-precision timestamp (HH:MM:SS.ms)."""
        now = datetime.now()
        return f"{now.strftime('%H:%M:%S')}.{now.microsecond // 1000:03d}"

    @staticmethod
    def _parse_source(message: str) -> tuple:
        """Extract [SOURCE] tag from message if present."""
        stripped = message.strip()
        if stripped.startswith("[") and "]" in stripped:
            tag_end = stripped.index("]")
            source = stripped[1:tag_end].upper()
            if 0 < len(source) < 15:
                return source, stripped[tag_end + 1:].strip()
        return "SYSTEM", message

    @staticmethod
    def _format_console(level: str, message: str, source: str) -> None:
        if Logger._silent_mode:
            return

        icon = SOURCE_ICONS.get(source.upper(), "")
        msg_with_icon = f"{icon} {message}" if icon else message
        style = LEVEL_STYLES.get(level, "white")

        line = Text()
        line.append(f"{Logger._timestamp()} ", style="dim")
        line.append(f"| {level[:8].ljust(8)} ", style=style)
        line.append(f"| {source[:10].ljust(10)} ", style="blue")
        line.append(f"| {msg_with_icon}", style=style if level in ("ERROR", "CRITICAL") else "")
        _console.print(line)

    @staticmethod
    def _log_to_file(level: str, message: str, source: str = "") -> None:
        full_msg = f"[{source}] {message}" if source else message
        file_logger.log(getattr(logging, level, logging.INFO), full_msg)

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    @staticmethod
    def info(message: str, icon: str = "") -> None:
        source, msg = Logger._parse_source(message)
        if icon:
            msg = f"{icon} {msg}"
        Logger._format_console("INFO", msg, source)
        Logger._log_to_file("INFO", msg, source)

    @staticmethod
    def success(message: str) -> None:
        source, msg = Logger._parse_source(message)
        Logger._format_console("SUCCESS", msg, source)
        Logger._log_to_file("INFO", f"✅ {msg}", source)

    @staticmethod
    def warning(message: str) -> None:
        source, msg = Logger._parse_source(message)
        Logger._format_console("WARNING", msg, source)
        Logger._log_to_file("WARNING", msg, source)

    @staticmethod
    def error(message: str) -> None:
        source, msg = Logger._parse_source(message)
        Logger._format_console("ERROR", msg, source)
        Logger._log_to_file("ERROR", msg, source)

    @staticmethod
    def debug(message: str) -> None:
        source, msg = Logger._parse_source(message)
        Logger._log_to_file("DEBUG", msg, source)

    @staticmethod
    def critical(message: str) -> None:
        source, msg = Logger._parse_source(message)
        Logger._format_console("CRITICAL", f"🛑 {msg}", source)
        Logger._log_to_file("ERROR", f"🛑 {msg}", source)

    @staticmethod
    def section(title: str) -> None:
        """Print a section header."""
        if not Logger._silent_mode:
            _console.print()
            _console.rule(f"[bold magenta]{title}[/]", style="dim")
        Logger._log_to_file("INFO", f"=== {title} ===", "SYSTEM")

    @staticmethod
    def set_silent(silent: bool) -> None:
        """Enable/disable console output."""
        Logger._silent_mode = silent
