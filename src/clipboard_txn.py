"""
clipboard_txn.py — One clipboard cleaning run as a five-phase transaction.

    Snapshot   read the clipboard once; this copy is the only rollback source
    Transform  mojibake recovery, then TUI border stripping, derived fresh
               from the snapshot
    Validate   refuse to commit a result that lost real content
    Commit     the single forward write
    Verify     read back; anything other than what was written is reverted

At most two reads and two writes per run, always in that order. Nothing
raised by a phase escapes run(): every failure becomes an outcome with a
reason, and the caller prints that reason once.
"""
import itertools
import logging
import time

import mojibake_recovery
from clipboard_backends import UNAVAILABLE, ClipboardError
from clipboard_backends import WRITE_FAILED as WRITE_ERROR
from reprompt_config import Settings
from tui_filters import clean_text_stats, significant_length

log = logging.getLogger("clipboard_txn")

# Outcomes
COMMITTED = "COMMITTED"
ROLLED_BACK = "ROLLED_BACK"
NOOP_IDENTICAL = "NOOP_IDENTICAL"
FAILED = "FAILED"

# Reasons
BACKEND_UNAVAILABLE = "BackendUnavailable"
ENCODING_CORRUPTION = "EncodingCorruption"
VALIDATION_REJECTED = "ValidationRejected"
WRITE_FAILED = "WriteFailed"
VERIFICATION_MISMATCH = "VerificationMismatch"

# Validation verdicts
SAFE = "SAFE"
UNSAFE = "UNSAFE"

# States
IDLE = "IDLE"
SNAPSHOTTING = "SNAPSHOTTING"
TRANSFORMING = "TRANSFORMING"
VALIDATING = "VALIDATING"
COMMITTING = "COMMITTING"
VERIFYING = "VERIFYING"
DONE = "DONE"

_sequence = itertools.count(1)


class ClipboardPayload:
    """Clipboard text captured at one moment. Equal iff the text is equal."""

    __slots__ = ("_text", "_sequence", "_captured_at")

    def __init__(self, text: str):
        self._text = text
        self._sequence = next(_sequence)
        self._captured_at = time.time()

    @property
    def text(self) -> str:
        return self._text

    @property
    def sequence(self) -> int:
        return self._sequence

    @property
    def captured_at(self) -> float:
        return self._captured_at

    def __eq__(self, other):
        if not isinstance(other, ClipboardPayload):
            return NotImplemented
        return self._text == other._text

    def __hash__(self):
        return hash(self._text)

    def __repr__(self):
        return f"ClipboardPayload(#{self._sequence}, {len(self._text)} chars)"


class TransactionOutcome:
    def __init__(self, status: str, reason: str = "", detail: str = "", text: str = None,
                 restore_attempted: bool = False, restored: bool = None, stats: dict = None):
        self.status = status
        self.reason = reason
        self.detail = detail
        self.text = text
        self.restore_attempted = restore_attempted
        self.restored = restored
        self.stats = stats or {}

    @property
    def ok(self) -> bool:
        return self.status in (COMMITTED, NOOP_IDENTICAL)

    def message(self) -> str:
        if self.reason and self.detail:
            return f"{self.reason}: {self.detail}"
        return self.reason or self.detail

    def __repr__(self):
        return f"TransactionOutcome({self.status}, reason={self.reason!r}, detail={self.detail!r})"


def transform(text: str, settings: Settings) -> tuple[str, str, dict]:
    """Run the text half of the pipeline.

    Returns (baseline, cleaned, stats). baseline is the text the border
    stripper actually saw: the snapshot, or its mojibake repair.
    """
    verdict, baseline, score, codepage = mojibake_recovery.recover(
        text, settings.mojibake_min_score
    )
    if verdict == mojibake_recovery.UNRECOVERABLE:
        log.warning(
            f"{ENCODING_CORRUPTION}: {score:.0%} of lines look like {codepage} mojibake "
            f"but could not be repaired; cleaning the text as is"
        )

    cleaned, stats = clean_text_stats(baseline, settings.table_pipe_min)
    stats['mojibake'] = verdict
    stats['mojibake_score'] = round(score, 3)
    stats['codepage'] = codepage
    return baseline, cleaned, stats


def validate(snapshot_text: str, baseline_text: str, cleaned_text: str,
             min_keep_ratio: float) -> tuple:
    """Check a cleaned result before it is allowed anywhere near the clipboard.

    Returns (verdict, reason).
    """
    if snapshot_text.strip() and not cleaned_text.strip():
        return (UNSAFE, "result is empty but the clipboard was not")

    before = significant_length(baseline_text)
    if before:
        after = significant_length(cleaned_text)
        if after < before * min_keep_ratio:
            return (UNSAFE, f"result keeps only {after} of {before} content characters")
    return (SAFE, "")


class ClipboardTransaction:
    def __init__(self, port, settings: Settings = None):
        self.port = port
        self.settings = settings or Settings()
        self.state = IDLE
        self.snapshot = None
        self.reads = 0
        self.writes = 0

    def _enter(self, state: str):
        log.debug(f"{self.state} -> {state}")
        self.state = state

    def _read(self) -> str:
        self.reads += 1
        try:
            return self.port.read()
        except ClipboardError:
            raise
        except Exception as e:
            log.exception("Clipboard backend raised an unexpected error on read")
            raise ClipboardError("Clipboard read failed", UNAVAILABLE, e)

    def _write(self, text: str):
        self.writes += 1
        try:
            self.port.write(text)
        except ClipboardError:
            raise
        except Exception as e:
            log.exception("Clipboard backend raised an unexpected error on write")
            raise ClipboardError("Clipboard write failed", WRITE_ERROR, e)

    def _restore(self, reason: str, detail: str, stats: dict) -> TransactionOutcome:
        """Best-effort write of the snapshot back. The outcome keeps reason."""
        try:
            self._write(self.snapshot.text)
            restored = True
            log.info(f"Snapshot {self.snapshot!r} restored after {reason}")
        except ClipboardError as e:
            restored = False
            log.error(f"Restore after {reason} also failed, clipboard may be left modified: {e}")
        self._enter(DONE)
        return TransactionOutcome(ROLLED_BACK, reason, detail,
                                  restore_attempted=True, restored=restored, stats=stats)

    def run(self, dry_run: bool = False) -> TransactionOutcome:
        """Execute one transaction against the port and report what happened."""
        if self.state != IDLE:
            raise RuntimeError("ClipboardTransaction objects are single-use")

        # Phase 1: Snapshot
        self._enter(SNAPSHOTTING)
        try:
            self.snapshot = ClipboardPayload(self._read())
        except ClipboardError as e:
            log.error(f"Snapshot read failed: {e}")
            self._enter(DONE)
            return TransactionOutcome(FAILED, BACKEND_UNAVAILABLE, str(e))
        log.debug(f"Snapshot {self.snapshot!r} via {getattr(self.port, 'name', type(self.port).__name__)}")

        if not self.snapshot.text.strip():
            self._enter(DONE)
            return TransactionOutcome(NOOP_IDENTICAL, detail="clipboard is empty",
                                      text=self.snapshot.text)

        # Phase 2: Transform
        self._enter(TRANSFORMING)
        try:
            baseline, cleaned, stats = transform(self.snapshot.text, self.settings)
        except Exception as e:
            log.exception("Transform raised; leaving the clipboard alone")
            self._enter(DONE)
            return TransactionOutcome(ROLLED_BACK, VALIDATION_REJECTED, f"transform error: {e}")
        log.debug(f"Transform stats: {stats}")

        if cleaned == self.snapshot.text:
            self._enter(DONE)
            return TransactionOutcome(NOOP_IDENTICAL, text=cleaned, stats=stats)

        # Phase 3: Validate
        self._enter(VALIDATING)
        verdict, why = validate(self.snapshot.text, baseline, cleaned, self.settings.min_keep_ratio)
        if verdict == UNSAFE:
            log.warning(f"Commit refused: {why}")
            self._enter(DONE)
            return TransactionOutcome(ROLLED_BACK, VALIDATION_REJECTED, why, stats=stats)

        if dry_run:
            self._enter(DONE)
            return TransactionOutcome(COMMITTED, detail="dry run, nothing written",
                                      text=cleaned, stats=stats)

        # Phase 4: Commit
        self._enter(COMMITTING)
        try:
            self._write(cleaned)
        except ClipboardError as e:
            log.error(f"Commit write failed: {e}")
            # The write may have partly landed; put the snapshot back
            return self._restore(WRITE_FAILED, str(e), stats)

        # Phase 5: Verify
        self._enter(VERIFYING)
        try:
            readback = self._read()
        except ClipboardError as e:
            log.error(f"Verify read failed: {e}")
            return self._restore(VERIFICATION_MISMATCH, f"read-back failed: {e}", stats)

        if readback != cleaned:
            log.error(f"Verify mismatch: wrote {len(cleaned)} chars, read back {len(readback)}")
            return self._restore(VERIFICATION_MISMATCH, "clipboard changed after write", stats)

        self._enter(DONE)
        return TransactionOutcome(COMMITTED, text=cleaned, stats=stats)


def sanitize_clipboard(port, settings: Settings = None, dry_run: bool = False) -> TransactionOutcome:
    return ClipboardTransaction(port, settings).run(dry_run=dry_run)
