import os
import shutil
import sys
import threading
import time
from typing import Optional

from .types import FailureRecord
from .utils import human_bytes


class TransferObserver:
    def on_start(self, name: str, size: int) -> None:
        pass

    def on_progress(self, name: str, fraction: float) -> None:
        pass

    def on_complete(self, name: str, url: Optional[str] = None) -> None:
        pass

    def on_failed(self, name: str, failure: FailureRecord) -> None:
        pass


NULL_OBSERVER = TransferObserver()


def enable_ansi_colors() -> bool:
    if not sys.stdout.isatty():
        return False
    if os.name != "nt":
        return True
    try:
        import ctypes

        kernel32 = ctypes.windll.kernel32
        handle = kernel32.GetStdHandle(-11)
        mode = ctypes.c_uint()
        if kernel32.GetConsoleMode(handle, ctypes.byref(mode)) == 0:
            return False
        return kernel32.SetConsoleMode(handle, mode.value | 0x0004) != 0
    except (AttributeError, OSError):
        return False


class TerminalUI(TransferObserver):
    RESET = "\033[0m"
    CYAN = "\033[96m"
    GREEN = "\033[92m"
    YELLOW = "\033[93m"
    RED = "\033[91m"

    def __init__(self, pretty: bool, workers: int):
        self.pretty = pretty
        self.workers = max(1, workers)
        self.is_tty = sys.stdout.isatty()
        self.dashboard = pretty and self.is_tty and self.workers > 1
        self.dynamic = pretty and self.is_tty and self.workers == 1
        self.use_color = pretty and enable_ansi_colors()
        self.lock = threading.Lock()
        self.term_width = shutil.get_terminal_size((120, 20)).columns
        self.sizes: dict[str, int] = {}
        self.started_at: dict[str, float] = {}
        self.last_progress_at: dict[str, float] = {}
        self.last_pct_step: dict[str, int] = {}
        self.slots: list[str] = []
        self.key_to_slot: dict[str, int] = {}
        self.dynamic_active = False
        self.stopped = False
        self.completed = 0
        self.transferred_bytes = 0
        self.failures: list[FailureRecord] = []
        self.pct_step = 25

    def stop(self) -> None:
        with self.lock:
            self.stopped = True
            if self.dynamic_active:
                sys.stdout.write("\n")
                sys.stdout.flush()
                self.dynamic_active = False

    def _truncate(self, text: str) -> str:
        return text[: self.term_width - 1]

    def _color(self, text: str, color: str) -> str:
        if not self.use_color:
            return text
        return f"{color}{text}{self.RESET}"

    def _ensure_slots(self) -> None:
        if self.slots:
            return
        self.slots = [""] * self.workers
        sys.stdout.write("\n" * self.workers)
        sys.stdout.flush()

    def _render_slots(self) -> None:
        self._ensure_slots()
        sys.stdout.write(f"\033[{self.workers}A")
        for line in self.slots:
            sys.stdout.write("\r" + self._truncate(line).ljust(self.term_width) + "\n")
        sys.stdout.flush()

    def _assign_slot(self, key: str, text: str) -> None:
        self._ensure_slots()
        idx = self.key_to_slot.get(key)
        if idx is None:
            used = set(self.key_to_slot.values())
            idx = next((i for i in range(self.workers) if i not in used), 0)
            self.key_to_slot[key] = idx
        self.slots[idx] = text

    def _line(self, text: str) -> None:
        with self.lock:
            if self.stopped:
                print(text, flush=True)
                return
            if self.dashboard and self.slots:
                # log lines scroll above the dashboard block
                sys.stdout.write(f"\033[{self.workers}A")
                print(self._truncate(text).ljust(self.term_width), flush=True)
                sys.stdout.write("\n" * (self.workers - 1))
                self._render_slots()
                return
            if self.dynamic_active:
                sys.stdout.write("\n")
                self.dynamic_active = False
            print(text, flush=True)

    def info(self, msg: str) -> None:
        self._line(self._color("[INFO]", self.CYAN) + f" {msg}")

    def ok(self, msg: str) -> None:
        self._line(self._color("[ OK ]", self.GREEN) + f" {msg}")

    def warn(self, msg: str) -> None:
        self._line(self._color("[WARN]", self.YELLOW) + f" {msg}")

    def error(self, msg: str) -> None:
        self._line(self._color("[FAIL]", self.RED) + f" {msg}")

    @staticmethod
    def render_bar(fraction: float, width: int = 22) -> str:
        fill = int(width * max(0.0, min(1.0, fraction)))
        return "[" + ("#" * fill) + ("-" * (width - fill)) + "]"

    def on_start(self, name: str, size: int) -> None:
        with self.lock:
            self.sizes[name] = size
            self.started_at[name] = time.monotonic()
            self.last_pct_step[name] = -1
            if self.dashboard and not self.stopped:
                self._assign_slot(name, f"{name} starting ({human_bytes(size)})")
                self._render_slots()

    def on_progress(self, name: str, fraction: float) -> None:
        now = time.monotonic()
        with self.lock:
            if self.stopped:
                return
            size = self.sizes.get(name, 0)
            fraction = max(0.0, min(1.0, fraction))
            current = int(size * fraction)
            elapsed = max(1e-6, now - self.started_at.get(name, now))
            speed = current / elapsed
            if not self.dashboard and not self.dynamic:
                step = int(fraction * 100) // self.pct_step
                if step <= self.last_pct_step.get(name, -1):
                    return
                self.last_pct_step[name] = step
            elif fraction < 1.0 and now - self.last_progress_at.get(name, 0.0) < 0.2:
                return
            self.last_progress_at[name] = now

            width = 12 if self.workers > 1 else 22
            line = self._truncate(
                f"{name:<30} {self.render_bar(fraction, width)} {fraction * 100:6.2f}% "
                f"{human_bytes(current):>10}/{human_bytes(size):<10} "
                f"{human_bytes(speed):>8}/s"
            )
            if self.dashboard:
                self._assign_slot(name, line)
                self._render_slots()
            elif self.dynamic:
                sys.stdout.write("\r" + line.ljust(self.term_width))
                sys.stdout.flush()
                self.dynamic_active = True
            else:
                print(line, flush=True)

    def _finish_slot(self, name: str) -> None:
        with self.lock:
            self.sizes.pop(name, None)
            self.started_at.pop(name, None)
            self.last_progress_at.pop(name, None)
            self.last_pct_step.pop(name, None)
            idx = self.key_to_slot.pop(name, None)
            if not self.dashboard or self.stopped or idx is None:
                return
            self.slots[idx] = ""
            self._render_slots()

    def on_complete(self, name: str, url: Optional[str] = None) -> None:
        with self.lock:
            self.completed += 1
            self.transferred_bytes += self.sizes.get(name, 0)
        self._finish_slot(name)
        self.ok(f"{name} -> {url}" if url else f"{name} done")

    def on_failed(self, name: str, failure: FailureRecord) -> None:
        with self.lock:
            self.failures.append(failure)
        self._finish_slot(name)
        status = f" (HTTP {failure.status_code})" if failure.status_code else ""
        self.error(f"{name}{status}: {failure.message}")
