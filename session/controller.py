from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional

from exceptions import BackdropError
from pipeline.orchestrator import ImageOptimizer, build_default_optimizer
from schemas import LogEntry, OptimizationOverrides, OptimizationReport, RawInput
from session.guard import Outcome, SupersessionGuard
from session.previews import PreviewStore
from storage.history import HistoryLog
from storage.kv import KeyValueStore, build_store
from utils.logging import get_logger

logger = get_logger("session.controller")

GENERIC_ERROR_MESSAGE = "Unable to process the selected image."


class Status(str, Enum):
    IDLE = "idle"
    PROCESSING = "processing"
    READY = "ready"
    ERROR = "error"


@dataclass(frozen=True)
class PreviewPaths:
    desktop: Path
    mobile: Path


class OptimizerSession:
    """Owns the state a user-facing shell displays.

    Only the latest file selection may change status, report, previews
    or history. Earlier selections that finish late are dropped, whether
    they succeeded or failed.
    """

    def __init__(
        self,
        optimizer: ImageOptimizer,
        history: HistoryLog,
        previews: PreviewStore | None = None,
        guard: SupersessionGuard | None = None,
    ):
        self.optimizer = optimizer
        self.history = history
        self.previews = previews or PreviewStore()
        self.guard = guard or SupersessionGuard()

        self.status = Status.IDLE
        self.error_message: Optional[str] = None
        self.report: Optional[OptimizationReport] = None
        self.preview_paths: Optional[PreviewPaths] = None

    @classmethod
    async def create(
        cls,
        optimizer: ImageOptimizer | None = None,
        store: KeyValueStore | None = None,
        previews: PreviewStore | None = None,
    ) -> "OptimizerSession":
        """Build a session with history restored from the store."""
        history = await HistoryLog.load(store if store is not None else build_store())
        return cls(optimizer or build_default_optimizer(), history, previews=previews)

    @property
    def logs(self) -> list[LogEntry]:
        return self.history.entries

    async def handle_file_selection(
        self,
        raw: RawInput,
        overrides: OptimizationOverrides | None = None,
    ) -> Outcome[OptimizationReport]:
        """Optimize a newly selected file, superseding any in-flight one."""
        self.status = Status.PROCESSING
        self.error_message = None

        outcome = await self.guard.run(lambda: self.optimizer.optimize(raw, overrides))

        if not outcome.current:
            logger.debug(
                "Discarding superseded result",
                extra={
                    "request_id": outcome.token,
                    "context": {"name": raw.name, "failed": not outcome.ok},
                },
            )
            return outcome

        if outcome.error is not None:
            self._fail(outcome.error, outcome.token)
        else:
            await self._apply(raw, outcome.result, outcome.token)
        return outcome

    async def clear_logs(self) -> None:
        await self.history.clear()

    def close(self) -> None:
        """Release all preview files."""
        self.preview_paths = None
        self.previews.close()

    def _fail(self, error: BaseException, token: int) -> None:
        if isinstance(error, BackdropError):
            self.error_message = error.message
            logger.info(
                error.message,
                extra={"request_id": token, "context": {"error": error.error_code, **error.details}},
            )
        else:
            self.error_message = GENERIC_ERROR_MESSAGE
            logger.error(
                "Unexpected failure while optimizing",
                exc_info=error,
                extra={"request_id": token},
            )
        self.status = Status.ERROR

    async def _apply(self, raw: RawInput, report: OptimizationReport, token: int) -> None:
        created = []
        try:
            for variant in (report.desktop, report.mobile):
                created.append(self.previews.create(variant.encoded_bytes, variant.media_type))
        except OSError as e:
            for path in created:
                self.previews.release(path)
            self._fail(e, token)
            return
        desktop, mobile = created

        previous = self.preview_paths
        self.report = report
        self.preview_paths = PreviewPaths(desktop=desktop, mobile=mobile)
        self.status = Status.READY
        if previous is not None:
            self.previews.release(previous.desktop)
            self.previews.release(previous.mobile)

        await self.history.append(LogEntry.from_report(raw, report))
