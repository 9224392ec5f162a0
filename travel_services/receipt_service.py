"""
travel_services.receipt_service -- Receipt intake: screen, then store.

Responsibility:
    Screen a batch of incoming files against the receipt rules, upload the
    accepted ones to the configured ``FileStorage`` in parallel under a
    timeout, and report per-file outcomes.

Architecture position:
    Services -- owns the thread pool and the storage adapter.  The service
    facade attaches the resulting ``Receipt`` values to an expense.

Invariants enforced:
    - Partial acceptance: each file succeeds or fails on its own.  A bad
      file never blocks the good ones in the same batch.
    - Uploads are bounded by ``timeout_seconds`` for the whole batch;
      timeouts and storage failures are reported as retriable.
    - Accepted receipts keep the input order of their files.
    - An upload that finishes after its timeout is never attached.  The
      stored file is logged (``receipt_upload_orphaned``) and kept for
      ``drain_orphaned_uploads()`` so a cleanup job can delete it.

Failure modes:
    - Storage errors other than ``ReceiptUploadError``/``OSError``
      propagate to the caller.
"""

from __future__ import annotations

import concurrent.futures
import threading
import time
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol

from travel_engines.expense_validation import (
    ReceiptFile,
    ReceiptRules,
    RejectedFile,
    screen_receipt_files,
)
from travel_kernel.domain.clock import Clock, SystemClock
from travel_kernel.domain.models import Receipt
from travel_kernel.exceptions import ReceiptUploadError, UploadTimeoutError
from travel_kernel.logging_config import get_logger

logger = get_logger("services.receipts")

DEFAULT_UPLOAD_TIMEOUT_SECONDS = 30.0


@dataclass(frozen=True)
class StoredFile:
    reference: str
    url: str | None = None


class FileStorage(Protocol):
    """Where receipt files end up (object storage, CMS assets, ...)."""

    def upload(self, filename: str, content: bytes, content_type: str) -> StoredFile: ...


@dataclass(frozen=True)
class UploadBatchResult:
    accepted: tuple[Receipt, ...] = ()
    rejected: tuple[RejectedFile, ...] = ()

    @property
    def has_failures(self) -> bool:
        return bool(self.rejected)

    @property
    def retriable_failures(self) -> tuple[RejectedFile, ...]:
        return tuple(r for r in self.rejected if r.retriable)


class ReceiptService:
    def __init__(
        self,
        storage: FileStorage,
        *,
        clock: Clock | None = None,
        rules: ReceiptRules | None = None,
        timeout_seconds: float = DEFAULT_UPLOAD_TIMEOUT_SECONDS,
        max_workers: int = 4,
    ):
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")
        self._storage = storage
        self._clock = clock or SystemClock()
        self._rules = rules or ReceiptRules()
        self._timeout = timeout_seconds
        self._max_workers = max_workers
        self._orphaned: list[StoredFile] = []
        self._orphan_lock = threading.Lock()

    @property
    def rules(self) -> ReceiptRules:
        return self._rules

    def upload_receipts(self, files: Sequence[ReceiptFile]) -> UploadBatchResult:
        screening = screen_receipt_files(files, self._rules)
        rejected: list[RejectedFile] = list(screening.rejected)
        for r in screening.rejected:
            logger.info(
                "receipt_rejected",
                extra={"filename": r.filename, "reason": r.reason},
            )

        if not screening.accepted:
            return UploadBatchResult(rejected=tuple(rejected))

        stored: list[Receipt] = []
        executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=min(self._max_workers, len(screening.accepted)),
            thread_name_prefix="receipt-upload",
        )
        try:
            futures = [
                executor.submit(self._storage.upload, f.filename, f.content, f.content_type)
                for f in screening.accepted
            ]
            deadline = time.monotonic() + self._timeout
            for f, future in zip(screening.accepted, futures):
                try:
                    result = self._await(future, f.filename, deadline)
                except ReceiptUploadError as exc:
                    if not future.cancel() and isinstance(exc, UploadTimeoutError):
                        self._track_late_completion(future, f.filename)
                    rejected.append(
                        RejectedFile(f.filename, exc.reason, retriable=exc.retriable, code=exc.code)
                    )
                    logger.warning(
                        "receipt_upload_failed",
                        extra={"filename": f.filename, "error_code": exc.code, "reason": exc.reason},
                    )
                    continue
                stored.append(Receipt(
                    file_reference=result.reference,
                    filename=f.filename,
                    uploaded_at=self._clock.now_utc(),
                    url=result.url,
                    content_type=f.content_type,
                    size=f.size,
                ))
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        logger.info(
            "receipt_batch_processed",
            extra={"accepted": len(stored), "rejected": len(rejected)},
        )
        return UploadBatchResult(accepted=tuple(stored), rejected=tuple(rejected))

    def _await(
        self,
        future: concurrent.futures.Future,
        filename: str,
        deadline: float,
    ) -> StoredFile:
        remaining = max(deadline - time.monotonic(), 0.0)
        try:
            return future.result(timeout=remaining)
        except concurrent.futures.TimeoutError as exc:
            raise UploadTimeoutError(filename, self._timeout) from exc
        except OSError as exc:
            raise ReceiptUploadError(filename, str(exc)) from exc

    def _track_late_completion(self, future: concurrent.futures.Future, filename: str) -> None:
        def _on_done(done: concurrent.futures.Future) -> None:
            if done.cancelled() or done.exception() is not None:
                return
            stored = done.result()
            logger.warning(
                "receipt_upload_orphaned",
                extra={"filename": filename, "file_reference": stored.reference},
            )
            with self._orphan_lock:
                self._orphaned.append(stored)

        future.add_done_callback(_on_done)

    def drain_orphaned_uploads(self) -> tuple[StoredFile, ...]:
        """Files stored after their batch timed out; cleared once returned."""
        with self._orphan_lock:
            orphaned = tuple(self._orphaned)
            self._orphaned.clear()
        return orphaned
