"""
Pipeline Logging for imgpaste
=============================

Colored, phase-tracked logging for the upload pipeline.
IMPORTANT: No emojis in console output (Windows encoding issues).
"""

import logging
import time
from contextlib import contextmanager
from typing import Dict, Optional

from colorama import Fore, Style, init

# Initialize colorama for Windows
init(autoreset=True)


class Phase:
    """Phase constants for the upload pipeline"""
    DECODE = "DECODE"
    VALIDATE = "VALIDATE"
    STAGE = "STAGE"
    NAMING = "NAMING"
    AUTH = "AUTH"
    STORE = "STORE"
    COMPLETE = "COMPLETE"


PHASE_COLORS = {
    Phase.DECODE: Fore.CYAN,
    Phase.VALIDATE: Fore.BLUE,
    Phase.STAGE: Fore.WHITE,
    Phase.NAMING: Fore.YELLOW,
    Phase.AUTH: Fore.MAGENTA,
    Phase.STORE: Fore.GREEN,
    Phase.COMPLETE: Fore.GREEN + Style.BRIGHT,
}

# Text-based icons, no emojis
PHASE_ICONS = {
    Phase.DECODE: "[DEC]",
    Phase.VALIDATE: "[VAL]",
    Phase.STAGE: "[TMP]",
    Phase.NAMING: "[NAM]",
    Phase.AUTH: "[ACL]",
    Phase.STORE: "[STO]",
    Phase.COMPLETE: "[OK ]",
}


class TimingTracker:
    """Track timing for phases"""

    def __init__(self):
        self._timings: Dict[str, float] = {}
        self._start_times: Dict[str, float] = {}

    def start(self, key: str):
        self._start_times[key] = time.monotonic()

    def end(self, key: str) -> float:
        """End timing and return elapsed seconds"""
        if key not in self._start_times:
            return 0.0
        elapsed = time.monotonic() - self._start_times.pop(key)
        self._timings[key] = elapsed
        return elapsed

    def get_all(self) -> Dict[str, float]:
        return self._timings.copy()


class PhaseLogger:
    """
    Logger bound to one upload request, tracking pipeline phases

    Usage:
        phase_logger = PhaseLogger(request_id="ab12", verbose=True)

        with phase_logger.phase(Phase.DECODE):
            phase_logger.info("Decoding inline payload")
    """

    def __init__(
        self,
        request_id: str,
        verbose: bool = False,
        logger: Optional[logging.Logger] = None
    ):
        self.request_id = request_id
        self.verbose = verbose
        self.logger = logger or logging.getLogger(__name__)
        self.timing_tracker = TimingTracker()
        self._current_phase: Optional[str] = None

    @contextmanager
    def phase(self, phase_name: str):
        """Track a pipeline phase; the footer is logged even when the phase fails."""
        previous = self._current_phase
        self._current_phase = phase_name
        self.timing_tracker.start(phase_name)
        if self.verbose:
            color = PHASE_COLORS.get(phase_name, Fore.WHITE)
            icon = PHASE_ICONS.get(phase_name, "[???]")
            self.logger.debug(f"{color}{icon} {phase_name} [{self.request_id}]{Style.RESET_ALL}")
        try:
            yield self
        finally:
            elapsed = self.timing_tracker.end(phase_name)
            if self.verbose:
                color = PHASE_COLORS.get(phase_name, Fore.WHITE)
                icon = PHASE_ICONS.get(phase_name, "[???]")
                self.logger.debug(
                    f"{color}{icon} {phase_name} done in {elapsed * 1000:.1f}ms{Style.RESET_ALL}"
                )
            self._current_phase = previous

    def info(self, message: str):
        """Log info message with current phase context"""
        if self._current_phase:
            color = PHASE_COLORS.get(self._current_phase, Fore.WHITE)
            icon = PHASE_ICONS.get(self._current_phase, "[???]")
            self.logger.info(f"{color}{icon}{Style.RESET_ALL} [{self.request_id}] {message}")
        else:
            self.logger.info(f"[{self.request_id}] {message}")

    def log_decision(self, decision: str, reason: Optional[str] = None, phase: Optional[str] = None):
        """
        Log the final outcome of the request

        Args:
            decision: "STORED" on success, otherwise the failure kind
            reason: Optional human readable detail
            phase: Phase in which a failure occurred
        """
        if decision.upper() == "STORED":
            color = Fore.GREEN + Style.BRIGHT
            icon = "[OK]"
        else:
            color = Fore.RED + Style.BRIGHT
            icon = "[REJECT]"

        failed_in = f" during {phase}" if phase else ""
        self.logger.info(f"{color}{icon} [{self.request_id}] {decision}{failed_in}{Style.RESET_ALL}")
        if reason:
            self.logger.info(f"  Reason: {reason}")

    def log_timing_summary(self):
        """Log per-phase timings (only if verbose)"""
        if not self.verbose:
            return
        timings = self.timing_tracker.get_all()
        if not timings:
            return
        total = sum(timings.values())
        parts = ", ".join(f"{name}={elapsed * 1000:.1f}ms" for name, elapsed in timings.items())
        self.logger.debug(f"[{self.request_id}] timings: {parts} (total {total * 1000:.1f}ms)")

