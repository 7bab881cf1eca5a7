"""
DB Controller - JSON Schemas

Loads the bundled JSON schemas and validates configuration, collector output
and summary documents against them.

Schemas (package data under dbcontroller/schemas/):
- config_schema.json:  run configuration file
- output_schema.json:  knobs and metrics documents
- summary_schema.json: experiment summary
"""

import json
import logging
from enum import Enum
from functools import lru_cache
from importlib import resources
from typing import Any, Dict, Union

from jsonschema import Draft7Validator
from jsonschema.exceptions import best_match

from .errors import SchemaValidationError

logger = logging.getLogger(__name__)


class JSONSchemaType(Enum):
    """Known document schemas, valued by bundled file name."""

    CONFIG = "config_schema.json"
    OUTPUT = "output_schema.json"
    SUMMARY = "summary_schema.json"


@lru_cache(maxsize=None)
def load_schema(schema_type: JSONSchemaType) -> Dict[str, Any]:
    """
    Load a bundled schema.

    Args:
        schema_type: Schema to load

    Returns:
        Parsed schema dictionary
    """
    text = resources.files("dbcontroller.schemas").joinpath(schema_type.value).read_text(
        encoding="utf-8"
    )
    schema = json.loads(text)
    Draft7Validator.check_schema(schema)
    return schema


@lru_cache(maxsize=None)
def _validator(schema_type: JSONSchemaType) -> Draft7Validator:
    return Draft7Validator(load_schema(schema_type))


def validate_document(schema_type: JSONSchemaType, document: Union[str, Dict[str, Any]]) -> Dict[str, Any]:
    """
    Validate a document against a schema.

    Args:
        schema_type: Schema to validate against
        document: JSON text or already-parsed object

    Returns:
        The parsed document

    Raises:
        SchemaValidationError: Document is not JSON or does not conform
    """
    if isinstance(document, str):
        try:
            document = json.loads(document)
        except json.JSONDecodeError as e:
            raise SchemaValidationError(
                f"Document is not valid JSON ({schema_type.name}): {e}",
                schema_name=schema_type.name,
            ) from e

    error = best_match(_validator(schema_type).iter_errors(document))
    if error is not None:
        path = "/".join(str(part) for part in error.absolute_path)
        raise SchemaValidationError(
            f"Invalid {schema_type.name.lower()} document at '/{path}': {error.message}",
            schema_name=schema_type.name,
            path=path,
        )

    return document


def is_valid_json(schema_type: JSONSchemaType, document: Union[str, Dict[str, Any]]) -> bool:
    """
    Check a document against a schema without raising.

    Returns:
        True if the document conforms
    """
    try:
        validate_document(schema_type, document)
    except SchemaValidationError as e:
        logger.debug(f"Schema check failed: {e}")
        return False
    return True
