"""
DB Controller - Experiment Orchestrator

Drives one experiment through a fixed sequence of states:

    INIT -> COLLECTING_BEFORE -> WAITING -> COLLECTING_AFTER -> SUMMARIZING -> COMPLETE

FAILED is terminal and reachable from every non-terminal state. Each phase
returns a PhaseResult; the orchestrator inspects it to decide whether to move
on or stop. An exception of any type inside a phase ends the run in FAILED.
Results are uploaded only from COMPLETE, exactly once.

Usage:
    outcome = run_experiment("config.json", observation_time=300, output_directory="output")
    if outcome.succeeded:
        print(outcome.artifacts.as_dict())
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional, Union

from .collectors import CollectorFactory, DatabaseCollector
from .config import (
    ConfigLoader,
    RunConfiguration,
    DEFAULT_OBSERVATION_SECONDS,
    DEFAULT_OUTPUT_DIRECTORY,
)
from .errors import (
    ArtifactWriteError,
    CollectionError,
    ConfigValidationError,
    DatabaseConnectionError,
    ObservationInterruptedError,
    SchemaValidationError,
    UnsupportedDatabaseError,
    UploadError,
)
from .logger import log_failure, log_phase, track_duration
from .models import (
    ArtifactDocument,
    ArtifactKind,
    ExperimentSummary,
    ResultArtifactSet,
    current_time_millis,
)
from .uploader import ResultUploader
from .writer import ResultWriter

logger = logging.getLogger(__name__)


class ExperimentState(Enum):
    INIT = "init"
    COLLECTING_BEFORE = "collecting_before"
    WAITING = "waiting"
    COLLECTING_AFTER = "collecting_after"
    SUMMARIZING = "summarizing"
    COMPLETE = "complete"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ExperimentState.COMPLETE, ExperimentState.FAILED)


TRANSITIONS = {
    ExperimentState.INIT: ExperimentState.COLLECTING_BEFORE,
    ExperimentState.COLLECTING_BEFORE: ExperimentState.WAITING,
    ExperimentState.WAITING: ExperimentState.COLLECTING_AFTER,
    ExperimentState.COLLECTING_AFTER: ExperimentState.SUMMARIZING,
    ExperimentState.SUMMARIZING: ExperimentState.COMPLETE,
}


class ErrorKind(Enum):
    CONFIG_VALIDATION = "config_validation"
    UNSUPPORTED_DATABASE = "unsupported_database"
    CONNECTION = "connection"
    COLLECTION = "collection"
    SCHEMA_VALIDATION = "schema_validation"
    IO = "io"
    INTERRUPTED = "interrupted"
    UPLOAD = "upload"
    UNKNOWN = "unknown"


_ERROR_KINDS = (
    (ConfigValidationError, ErrorKind.CONFIG_VALIDATION),
    (UnsupportedDatabaseError, ErrorKind.UNSUPPORTED_DATABASE),
    (DatabaseConnectionError, ErrorKind.CONNECTION),
    (CollectionError, ErrorKind.COLLECTION),
    (SchemaValidationError, ErrorKind.SCHEMA_VALIDATION),
    (ArtifactWriteError, ErrorKind.IO),
    (ObservationInterruptedError, ErrorKind.INTERRUPTED),
    (UploadError, ErrorKind.UPLOAD),
)


def classify_error(error: BaseException) -> ErrorKind:
    for error_cls, kind in _ERROR_KINDS:
        if isinstance(error, error_cls):
            return kind
    return ErrorKind.UNKNOWN


@dataclass(frozen=True)
class PhaseResult:
    """Outcome of one phase: ok, or failed with an error kind and message."""

    ok: bool
    error_kind: Optional[ErrorKind] = None
    message: str = ""

    @classmethod
    def success(cls) -> "PhaseResult":
        return cls(ok=True)

    @classmethod
    def failure(cls, error_kind: ErrorKind, message: str) -> "PhaseResult":
        return cls(ok=False, error_kind=error_kind, message=message)

    @classmethod
    def from_error(cls, error: BaseException) -> "PhaseResult":
        return cls.failure(classify_error(error), f"{type(error).__name__}: {error}")


@dataclass
class ExperimentOutcome:
    """Final report of one experiment."""

    state: ExperimentState
    artifacts: ResultArtifactSet
    summary: Optional[ExperimentSummary] = None
    failed_phase: Optional[ExperimentState] = None
    error_kind: Optional[ErrorKind] = None
    error_message: Optional[str] = None
    upload_response: Optional[str] = None
    upload_error: Optional[str] = None
    history: List[ExperimentState] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.state is ExperimentState.COMPLETE

    @property
    def uploaded(self) -> bool:
        return self.succeeded and self.upload_error is None and self.upload_response is not None


class ExperimentOrchestrator:
    """
    Runs one experiment against one target database.

    The run is strictly sequential. The observation window is a single
    blocking sleep with no activity against the target.
    """

    def __init__(
        self,
        config: RunConfiguration,
        observation_time: int = DEFAULT_OBSERVATION_SECONDS,
        output_directory: Union[str, Path] = DEFAULT_OUTPUT_DIRECTORY,
        factory: Optional[CollectorFactory] = None,
        writer: Optional[ResultWriter] = None,
        uploader: Optional[ResultUploader] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], int] = current_time_millis,
    ):
        """
        Initialize orchestrator.

        Args:
            config: Run configuration
            observation_time: Observation window in seconds (default: 300)
            output_directory: Base directory for result files (default: "output")
            factory: Collector factory (default registry if omitted)
            writer: Result writer (built from output_directory if omitted)
            uploader: Result uploader (default ResultUploader if omitted)
            sleep: Blocking wait function, in seconds
            clock: Wall clock in epoch milliseconds
        """
        if observation_time < 0:
            raise ValueError(f"Observation time must not be negative, got {observation_time}")

        self.config = config
        self.observation_time = int(observation_time)
        self.factory = factory or CollectorFactory()
        self.writer = writer or ResultWriter(output_directory, config.database_name)
        self.uploader = uploader or ResultUploader()
        self._sleep = sleep
        self._clock = clock

        self.state = ExperimentState.INIT
        self.history: List[ExperimentState] = [ExperimentState.INIT]
        self.artifacts = ResultArtifactSet()
        self.summary: Optional[ExperimentSummary] = None
        self.before_collector: Optional[DatabaseCollector] = None
        self.after_collector: Optional[DatabaseCollector] = None
        self.start_time: Optional[int] = None
        self.end_time: Optional[int] = None

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    def _transition(self, new_state: ExperimentState):
        if self.state.is_terminal:
            raise ValueError(f"Cannot leave terminal state {self.state.name}")
        if new_state is not ExperimentState.FAILED and TRANSITIONS.get(self.state) is not new_state:
            raise ValueError(f"Illegal transition {self.state.name} -> {new_state.name}")
        self.state = new_state
        self.history.append(new_state)
        log_phase(new_state.name, new_state.value, database=self.config.database_name)

    def run(self) -> ExperimentOutcome:
        """
        Execute the experiment.

        Returns:
            ExperimentOutcome (state COMPLETE or FAILED)
        """
        if self.state is not ExperimentState.INIT:
            raise ValueError("An orchestrator runs exactly one experiment")

        logger.info(
            f"Starting experiment: database={self.config.database_name}, "
            f"workload={self.config.workload_name}, observation_time={self.observation_time}s"
        )

        phases = (
            (ExperimentState.COLLECTING_BEFORE, self._collect_before),
            (ExperimentState.WAITING, self._wait),
            (ExperimentState.COLLECTING_AFTER, self._collect_after),
            (ExperimentState.SUMMARIZING, self._summarize),
        )

        for state, phase in phases:
            self._transition(state)
            result = phase()
            if not result.ok:
                return self._fail(state, result)

        self.artifacts.finalize()
        self._transition(ExperimentState.COMPLETE)
        outcome = self._outcome()
        self._upload(outcome)
        return outcome

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    def _collect_before(self) -> PhaseResult:
        try:
            self.before_collector = self.factory.create(self.config)
            logger.info("First collection of knobs and metrics before experiment")
            with track_duration("before-collection"):
                self._persist(ArtifactKind.KNOBS, self.before_collector.collect_parameters())
                self._persist(ArtifactKind.METRICS_BEFORE, self.before_collector.collect_metrics())
        except Exception as e:
            return PhaseResult.from_error(e)
        return PhaseResult.success()

    def _wait(self) -> PhaseResult:
        self.start_time = self._clock()
        logger.info(f"Starting the experiment, observing for {self.observation_time}s ...")
        try:
            self._sleep(self.observation_time)
        except (KeyboardInterrupt, InterruptedError):
            elapsed = (self._clock() - self.start_time) / 1000
            return PhaseResult.from_error(
                ObservationInterruptedError(f"Observation window interrupted after {elapsed:.1f}s")
            )
        self.end_time = self._clock()
        logger.info("Done running the experiment")
        return PhaseResult.success()

    def _collect_after(self) -> PhaseResult:
        try:
            self.after_collector = self.factory.create(self.config)
            logger.info("Second collection of metrics after experiment")
            with track_duration("after-collection"):
                self._persist(ArtifactKind.METRICS_AFTER, self.after_collector.collect_metrics())
        except Exception as e:
            return PhaseResult.from_error(e)
        return PhaseResult.success()

    def _summarize(self) -> PhaseResult:
        try:
            summary = ExperimentSummary(
                start_time=self.start_time,
                end_time=self.end_time,
                observation_time=self.observation_time,
                database_type=self.config.database_name,
                database_version=self.before_collector.collect_version(),
                workload_name=self.config.workload_name,
            )
            self._write(summary.to_document())
        except Exception as e:
            return PhaseResult.from_error(e)
        self.summary = summary
        return PhaseResult.success()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _persist(self, kind: ArtifactKind, content: str):
        self._write(ArtifactDocument(kind, content))

    def _write(self, document: ArtifactDocument) -> Path:
        path = self.writer.write(document)
        self.artifacts.add(document.kind, path)
        return path

    def _fail(self, phase: ExperimentState, result: PhaseResult) -> ExperimentOutcome:
        self._transition(ExperimentState.FAILED)
        log_failure(phase.name, result.error_kind.value, result.message)
        outcome = self._outcome()
        outcome.failed_phase = phase
        outcome.error_kind = result.error_kind
        outcome.error_message = result.message
        return outcome

    def _outcome(self) -> ExperimentOutcome:
        return ExperimentOutcome(
            state=self.state,
            artifacts=self.artifacts,
            summary=self.summary,
            history=list(self.history),
        )

    def _upload(self, outcome: ExperimentOutcome):
        logger.info(f"Uploading results to {self.config.upload_url}")
        try:
            outcome.upload_response = self.uploader.upload(
                self.artifacts, self.config.upload_url, self.config.upload_code
            )
        except UploadError as e:
            outcome.upload_error = str(e)
            logger.error(f"Result upload failed: {e}")


def run_experiment(
    config_path: Union[str, Path],
    observation_time: int = DEFAULT_OBSERVATION_SECONDS,
    output_directory: Union[str, Path] = DEFAULT_OUTPUT_DIRECTORY,
    **kwargs,
) -> ExperimentOutcome:
    """
    Load a configuration file and run one experiment.

    Configuration errors end the run in FAILED at INIT: nothing is collected,
    written or uploaded.

    Args:
        config_path: Path to the JSON configuration file
        observation_time: Observation window in seconds
        output_directory: Base directory for result files
        **kwargs: Passed through to ExperimentOrchestrator (factory, uploader, sleep, clock, ...)
    """
    try:
        config = ConfigLoader(config_path).load()
    except (ConfigValidationError, UnsupportedDatabaseError) as e:
        result = PhaseResult.from_error(e)
        log_failure(ExperimentState.INIT.name, result.error_kind.value, result.message)
        return ExperimentOutcome(
            state=ExperimentState.FAILED,
            artifacts=ResultArtifactSet(),
            failed_phase=ExperimentState.INIT,
            error_kind=result.error_kind,
            error_message=result.message,
            history=[ExperimentState.INIT, ExperimentState.FAILED],
        )

    orchestrator = ExperimentOrchestrator(
        config,
        observation_time=observation_time,
        output_directory=output_directory,
        **kwargs,
    )
    return orchestrator.run()
