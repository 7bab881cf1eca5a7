"""
DB Controller - Result Writer

Persists validated artifacts as JSON files, one per kind:

    {output_directory}/{database_name}/{kind}.json

Example: output/Postgres/metrics_before.json
"""

import json
import logging
import os
from pathlib import Path
from typing import Union

from .errors import ArtifactWriteError
from .models import ArtifactDocument, ArtifactKind

logger = logging.getLogger(__name__)


class ResultWriter:
    """
    Writes artifact documents for one database.

    Features:
    - Schema gate: a document is validated for its kind before any byte is written
    - Idempotent creation of the per-database directory
    - Overwrites files left by earlier runs against the same directory
    - Explicit flush and fsync after every write
    """

    def __init__(self, output_directory: Union[str, Path], database_name: str):
        """
        Initialize result writer.

        Args:
            output_directory: Base directory for result files
            database_name: Per-database subdirectory name (e.g. "Postgres")
        """
        self.output_directory = Path(output_directory)
        self.database_name = database_name

    @property
    def result_directory(self) -> Path:
        return self.output_directory / self.database_name

    def path_for(self, kind: ArtifactKind) -> Path:
        return self.result_directory / kind.filename

    def write(self, document: ArtifactDocument) -> Path:
        """
        Validate and write one artifact.

        Args:
            document: Artifact to persist

        Returns:
            Path the artifact was written to

        Raises:
            SchemaValidationError: Document does not conform; nothing is written
            ArtifactWriteError: Directory or file could not be written
        """
        document.validate()

        path = self.path_for(document.kind)
        try:
            self.result_directory.mkdir(parents=True, exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                f.write(document.content)
                f.write("\n")
                f.flush()
                os.fsync(f.fileno())
        except OSError as e:
            raise ArtifactWriteError(f"Failed to write {document.kind.filename}: {e}") from e

        logger.info(f"Wrote {document.kind.value} to {path}")
        return path

    def read(self, kind: ArtifactKind) -> dict:
        """
        Read back a written artifact.

        Raises:
            FileNotFoundError: Artifact has not been written
        """
        path = self.path_for(kind)
        if not path.exists():
            raise FileNotFoundError(f"Artifact not found: {path}")
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
