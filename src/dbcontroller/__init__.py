"""
DB Controller - Python Package

Captures a database's knobs and metrics before and after an externally driven
workload, summarizes the observation window and uploads the results.

Usage:
    from dbcontroller import run_experiment

    outcome = run_experiment("config.json", observation_time=300, output_directory="output")
    if outcome.succeeded:
        print(outcome.artifacts.as_dict())
"""

__version__ = "0.1.0"

# Public API
from .collectors import CollectorFactory, DatabaseCollector
from .config import ConfigLoader, ControllerSettings, RunConfiguration
from .models import ArtifactDocument, ArtifactKind, DatabaseType, ExperimentSummary, ResultArtifactSet
from .orchestrator import ExperimentOrchestrator, ExperimentOutcome, ExperimentState, run_experiment
from .uploader import ResultUploader
from .writer import ResultWriter

__all__ = [
    "CollectorFactory",
    "DatabaseCollector",
    "ConfigLoader",
    "ControllerSettings",
    "RunConfiguration",
    "ArtifactDocument",
    "ArtifactKind",
    "DatabaseType",
    "ExperimentSummary",
    "ResultArtifactSet",
    "ExperimentOrchestrator",
    "ExperimentOutcome",
    "ExperimentState",
    "run_experiment",
    "ResultUploader",
    "ResultWriter",
]
