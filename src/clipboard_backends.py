"""
clipboard_backends.py — Read/write access to the system clipboard.

Two backends implement the same two-method interface:
- NativeClipboard: pyperclip (Win32 API, pbcopy/pbpaste, xclip/xsel/wl-clipboard)
- WslClipboard:    proxies to the Windows host from inside WSL, reading with
                   powershell.exe and writing through clip.exe

detect_backend() picks one at startup; it is never swapped mid-run.
Every call is bounded by a timeout so a hung helper counts as a failure.
"""
import logging
import os
import platform
import shutil
import subprocess
import threading

import pyperclip

log = logging.getLogger("clipboard_backends")

# ClipboardError kinds
UNAVAILABLE = "unavailable"
EMPTY = "empty"
ENCODING = "encoding"
TIMEOUT = "timeout"
WRITE_FAILED = "write"

POWERSHELL_READ = [
    "powershell.exe", "-NoProfile", "-NonInteractive", "-Command",
    # Console output defaults to the OEM code page; force UTF-8 or every
    # box glyph comes back as cp437 mojibake
    "[Console]::OutputEncoding = [System.Text.Encoding]::UTF8; Get-Clipboard -Raw",
]
CLIP_WRITE = ["clip.exe"]


class ClipboardError(Exception):
    """A clipboard read or write that did not happen."""

    def __init__(self, message: str, kind: str = UNAVAILABLE, original_error: Exception = None):
        super().__init__(message)
        self.kind = kind
        self.original_error = original_error

    def __str__(self):
        base_msg = super().__str__()
        if self.original_error:
            return f"{base_msg} (Caused by: {type(self.original_error).__name__}: {self.original_error})"
        return base_msg


class ClipboardBackend:
    """The capability the transaction needs: read the text, replace the text."""

    name = "abstract"

    def read(self) -> str:
        raise NotImplementedError

    def write(self, text: str) -> None:
        raise NotImplementedError


class NativeClipboard(ClipboardBackend):
    name = "native"

    def __init__(self, timeout: float = 5.0):
        self.timeout = timeout
        # Worker of a call that timed out and may still land later
        self._pending = None

    def _wait_for_pending(self, what: str):
        """Let a timed-out call finish before starting another one.

        Otherwise an abandoned forward write could land after the restore
        and silently undo it.
        """
        if self._pending is None:
            return
        self._pending.join(self.timeout)
        if self._pending.is_alive():
            raise ClipboardError(
                f"Earlier clipboard call still running after {self.timeout}s, refusing to {what}",
                TIMEOUT,
            )
        self._pending = None

    def _run_with_timeout(self, func, args: tuple, what: str):
        """Run func(*args) on a worker thread, giving up after timeout seconds.

        The worker is a daemon: if the clipboard call never returns, it is
        abandoned and dies with the process. Until then it is remembered so
        the next call waits for it.
        """
        self._wait_for_pending(what)
        result = {}

        def target():
            try:
                result['value'] = func(*args)
            except Exception as e:
                result['error'] = e

        worker = threading.Thread(target=target, name=f"clipboard-{what}", daemon=True)
        worker.start()
        worker.join(self.timeout)
        if worker.is_alive():
            self._pending = worker
            raise ClipboardError(f"Clipboard {what} timed out after {self.timeout}s", TIMEOUT)
        if 'error' in result:
            raise result['error']
        return result.get('value')

    def read(self) -> str:
        try:
            text = self._run_with_timeout(pyperclip.paste, (), "read")
        except pyperclip.PyperclipException as e:
            raise ClipboardError("No clipboard mechanism available", UNAVAILABLE, e)
        except UnicodeError as e:
            raise ClipboardError("Clipboard text is not valid Unicode", ENCODING, e)
        except OSError as e:
            raise ClipboardError("Clipboard read failed", UNAVAILABLE, e)
        if text is None:
            raise ClipboardError("Clipboard holds no text", EMPTY)
        return text

    def write(self, text: str) -> None:
        try:
            self._run_with_timeout(pyperclip.copy, (text,), "write")
        except pyperclip.PyperclipException as e:
            raise ClipboardError("No clipboard mechanism available", UNAVAILABLE, e)
        except (OSError, UnicodeError) as e:
            raise ClipboardError("Clipboard write failed", WRITE_FAILED, e)


class WslClipboard(ClipboardBackend):
    """Windows clipboard seen from WSL, via the host's own helpers."""

    name = "wsl"

    def __init__(self, timeout: float = 5.0):
        self.timeout = timeout

    def read(self) -> str:
        try:
            proc = subprocess.run(POWERSHELL_READ, capture_output=True, timeout=self.timeout)
        except FileNotFoundError as e:
            raise ClipboardError("powershell.exe not found on PATH", UNAVAILABLE, e)
        except subprocess.TimeoutExpired as e:
            raise ClipboardError(f"Get-Clipboard timed out after {self.timeout}s", TIMEOUT, e)
        except OSError as e:
            raise ClipboardError("powershell.exe could not be started", UNAVAILABLE, e)

        if proc.returncode != 0:
            stderr = proc.stderr.decode('utf-8', errors='replace').strip()
            raise ClipboardError(f"PowerShell Get-Clipboard failed: {stderr}", UNAVAILABLE)

        try:
            text = proc.stdout.decode('utf-8')
        except UnicodeDecodeError as e:
            raise ClipboardError("Get-Clipboard output is not UTF-8", ENCODING, e)

        text = text.lstrip('\ufeff').replace('\r\n', '\n')
        # Host output always ends with one newline of its own
        if text.endswith('\n'):
            text = text[:-1]
        return text

    def write(self, text: str) -> None:
        # clip.exe sniffs the BOM and takes UTF-16LE verbatim
        payload = ('\ufeff' + text.replace('\n', '\r\n')).encode('utf-16-le')
        try:
            proc = subprocess.Popen(
                CLIP_WRITE,
                stdin=subprocess.PIPE,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
            )
        except OSError as e:
            raise ClipboardError("clip.exe could not be started", UNAVAILABLE, e)

        with proc:
            try:
                _, stderr = proc.communicate(payload, timeout=self.timeout)
            except subprocess.TimeoutExpired as e:
                proc.kill()
                proc.communicate()
                raise ClipboardError(f"clip.exe timed out after {self.timeout}s", TIMEOUT, e)
            except OSError as e:
                raise ClipboardError("clip.exe closed its input early", WRITE_FAILED, e)

        if proc.returncode != 0:
            detail = (stderr or b'').decode('utf-8', errors='replace').strip()
            raise ClipboardError(f"clip.exe exited with {proc.returncode}: {detail}", WRITE_FAILED)


def is_wsl(env=None, release: str = None) -> bool:
    """Return True when running inside Windows Subsystem for Linux."""
    env = os.environ if env is None else env
    if env.get("WSL_DISTRO_NAME") or env.get("WSL_INTEROP"):
        return True
    if release is None:
        release = platform.uname().release
    return "microsoft" in release.lower()


def detect_backend(settings) -> ClipboardBackend:
    """Pick the clipboard backend for this process."""
    timeout = settings.clipboard_timeout
    if settings.backend == "wsl":
        return WslClipboard(timeout)
    if settings.backend == "native":
        return NativeClipboard(timeout)

    if is_wsl() and shutil.which("clip.exe"):
        log.debug("WSL detected with clip.exe on PATH, using host clipboard proxy")
        return WslClipboard(timeout)
    return NativeClipboard(timeout)
