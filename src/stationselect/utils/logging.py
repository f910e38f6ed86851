"""Console logging setup and pipeline progress bar."""
import logging
import time
from typing import Dict, Sequence

from tqdm import tqdm

logger = logging.getLogger(__name__)

class Colors:
    """ANSI color codes for prettier output."""
    CYAN = '\033[36m'
    GREEN = '\033[32m'
    YELLOW = '\033[33m'
    RED = '\033[31m'
    BLUE = '\033[34m'
    GRAY = '\033[37m'
    BOLD = '\033[1m'
    RESET = '\033[0m'

class Symbols:
    """Unicode symbols for status indicators."""
    CHECK = '✓'
    CROSS = '✗'
    GEAR = '⚙️'
    PIN = '📍'
    BUS = '🚌'

LEVEL_COLORS = {
    'DEBUG': Colors.GRAY,
    'INFO': Colors.CYAN,
    'WARNING': Colors.YELLOW,
    'ERROR': Colors.RED,
    'CRITICAL': Colors.RED + Colors.BOLD,
}

class SimpleFormatter(logging.Formatter):
    """Level-coloured formatter that prints only the message."""
    def format(self, record):
        color = LEVEL_COLORS.get(record.levelname, Colors.RESET)
        return f"{color}{record.getMessage()}{Colors.RESET}"

def setup_logging(level: int = logging.INFO):
    """Route root logging to a single coloured console handler."""
    root = logging.getLogger()
    root.setLevel(level)

    for handler in root.handlers[:]:
        root.removeHandler(handler)

    console = logging.StreamHandler()
    console.setFormatter(SimpleFormatter())
    root.addHandler(console)

class ProgressTracker:
    """
    Step-wise progress bar for the precomputation pipeline.

    Every ``advance`` closes the current step and records its wall time in
    ``step_times``. With ``disable=True`` no bar is drawn and step messages go
    to the log instead.
    """
    def __init__(self, steps: Sequence[str], desc: str = "Precomputation Progress", disable: bool = False):
        self.steps = list(steps)
        self.disable = disable
        self.pbar = tqdm(
            total=len(self.steps),
            desc=f"{Colors.BLUE}{Symbols.BUS} {desc}{Colors.RESET}",
            bar_format="{desc}: {percentage:3.0f}%|{bar}| {n_fmt}/{total_fmt}",
            disable=disable,
        )
        self.current = 0
        self.step_times: Dict[str, float] = {}
        self._step_start = time.perf_counter()

        self.status_formats = {
            'success': f"{Colors.GREEN}{Symbols.CHECK}",
            'warning': f"{Colors.YELLOW}{Symbols.GEAR}",
            'error': f"{Colors.RED}{Symbols.CROSS}",
            'info': f"{Colors.CYAN}{Symbols.PIN}",
        }

    def advance(self, message=None, status='success'):
        """Close the current step and optionally report a message."""
        now = time.perf_counter()
        name = self.steps[self.current] if self.current < len(self.steps) else f"step_{self.current + 1}"
        self.step_times[name] = now - self._step_start
        self._step_start = now

        if message:
            if self.disable:
                level = logging.WARNING if status in ('warning', 'error') else logging.INFO
                logger.log(level, message)
            else:
                prefix = self.status_formats.get(status, '')
                self.pbar.write(f"{prefix} {message}{Colors.RESET}")
        self.current += 1
        self.pbar.update(1)

    def close(self):
        """Clean up progress bar."""
        if not self.disable:
            self.pbar.write(f"\n{Colors.GREEN}{Symbols.CHECK} Precomputation completed!{Colors.RESET}\n")
        self.pbar.close()
