"""
DB Controller - Data Models

Value types shared by the collectors, the orchestrator and the writer.

KEY TYPES:
- DatabaseType: supported engines; its value names the per-database output directory
- DatabaseTarget: host, port and database parsed from a JDBC-style URL
- ArtifactKind: knobs | metrics_before | metrics_after | summary
- ArtifactDocument: JSON text tagged with its kind
- ExperimentSummary: timing and identity of one observation window
- ResultArtifactSet: kind -> path mapping handed to the uploader
"""

import json
import time
from collections import OrderedDict
from dataclasses import dataclass, asdict
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterator, Optional, Tuple
from urllib.parse import urlsplit

from .errors import UnsupportedDatabaseError
from .schema import JSONSchemaType, validate_document


class DatabaseType(Enum):
    """Database engines with a collector variant."""

    POSTGRES = "Postgres"
    MYSQL = "MySQL"
    SAPHANA = "SAPHana"

    @classmethod
    def parse(cls, name: str) -> "DatabaseType":
        """
        Resolve a configured database type name (case-insensitive).

        Raises:
            UnsupportedDatabaseError: Name matches no known engine
        """
        normalized = (name or "").strip().lower()
        for member in cls:
            if normalized == member.value.lower():
                return member
        alias = _DATABASE_ALIASES.get(normalized)
        if alias is not None:
            return alias
        raise UnsupportedDatabaseError(f"Invalid database type: {name!r}")


_DATABASE_ALIASES = {
    "postgresql": DatabaseType.POSTGRES,
    "hana": DatabaseType.SAPHANA,
    "sap_hana": DatabaseType.SAPHANA,
}


@dataclass(frozen=True)
class DatabaseTarget:
    """Connection coordinates parsed from a database URL."""

    host: str
    port: int
    database: Optional[str] = None


def parse_database_url(url: str, default_port: int) -> DatabaseTarget:
    """
    Parse a JDBC-style or plain database URL.

    Examples:
        >>> parse_database_url("jdbc:postgresql://localhost:5432/tpcc", 5432)
        DatabaseTarget(host='localhost', port=5432, database='tpcc')
        >>> parse_database_url("jdbc:sap://hana01:30015/", 30015)
        DatabaseTarget(host='hana01', port=30015, database=None)

    Raises:
        ValueError: URL has no host or an invalid port
    """
    text = (url or "").strip()
    if text.lower().startswith("jdbc:"):
        text = text[len("jdbc:"):]

    parts = urlsplit(text)
    if not parts.hostname:
        raise ValueError(f"Database URL has no host: {url!r}")

    try:
        port = parts.port or default_port
    except ValueError as e:
        raise ValueError(f"Database URL has an invalid port: {url!r}") from e

    database = parts.path.strip("/") or None
    return DatabaseTarget(host=parts.hostname, port=port, database=database)


class ArtifactKind(Enum):
    """Artifacts produced by one experiment, in write order."""

    KNOBS = "knobs"
    METRICS_BEFORE = "metrics_before"
    METRICS_AFTER = "metrics_after"
    SUMMARY = "summary"

    @property
    def filename(self) -> str:
        return f"{self.value}.json"

    @property
    def schema_type(self) -> JSONSchemaType:
        if self is ArtifactKind.SUMMARY:
            return JSONSchemaType.SUMMARY
        return JSONSchemaType.OUTPUT


@dataclass(frozen=True)
class ArtifactDocument:
    """JSON document tagged with the artifact kind it will be persisted as."""

    kind: ArtifactKind
    content: str

    def validate(self) -> Dict[str, Any]:
        """
        Validate against the schema for this kind.

        Returns:
            Parsed document

        Raises:
            SchemaValidationError: Document does not conform
        """
        return validate_document(self.kind.schema_type, self.content)


@dataclass(frozen=True)
class ExperimentSummary:
    """
    Summary of one observation window.

    Timestamps are epoch milliseconds; observation_time is in seconds.
    """

    start_time: int
    end_time: int
    observation_time: int
    database_type: str
    database_version: str
    workload_name: str

    @property
    def elapsed_ms(self) -> int:
        return self.end_time - self.start_time

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=4)

    def to_document(self) -> ArtifactDocument:
        return ArtifactDocument(ArtifactKind.SUMMARY, self.to_json())


class ResultArtifactSet:
    """
    Mapping from artifact name to written path.

    Built incrementally while the run progresses and sealed by finalize().
    Once finalized no further artifacts can be added.
    """

    EXPECTED_KINDS = (
        ArtifactKind.KNOBS,
        ArtifactKind.METRICS_BEFORE,
        ArtifactKind.METRICS_AFTER,
        ArtifactKind.SUMMARY,
    )

    def __init__(self):
        self._paths: "OrderedDict[str, Path]" = OrderedDict()
        self._finalized = False

    @property
    def finalized(self) -> bool:
        return self._finalized

    def add(self, kind: ArtifactKind, path: Path):
        if self._finalized:
            raise ValueError("Artifact set is already finalized")
        self._paths[kind.value] = Path(path)

    def finalize(self) -> "ResultArtifactSet":
        """
        Seal the set.

        Raises:
            ValueError: Set does not hold exactly the expected artifacts
        """
        missing = [k.value for k in self.EXPECTED_KINDS if k.value not in self._paths]
        if missing:
            raise ValueError(f"Cannot finalize artifact set, missing: {', '.join(missing)}")
        self._finalized = True
        return self

    def is_complete(self) -> bool:
        return set(self._paths) == {k.value for k in self.EXPECTED_KINDS}

    def as_dict(self) -> Dict[str, str]:
        return {name: str(path) for name, path in self._paths.items()}

    def items(self) -> Iterator[Tuple[str, Path]]:
        return iter(self._paths.items())

    def __getitem__(self, name: str) -> Path:
        return self._paths[name]

    def __contains__(self, name: object) -> bool:
        return name in self._paths

    def __len__(self) -> int:
        return len(self._paths)

    def __repr__(self) -> str:
        state = "finalized" if self._finalized else "open"
        return f"ResultArtifactSet({state}, {self.as_dict()})"


def current_time_millis() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)
