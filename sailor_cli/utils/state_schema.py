"""
JSON Schema validation for the download state file.
Gives precise error messages when the file has been edited by hand or truncated.
"""

from typing import Any

from jsonschema import Draft7Validator

from sailor_cli.models.task import TaskState

_OPTIONAL_INT = {"type": ["integer", "null"], "minimum": 0}

TASK_SCHEMA = {
    "type": "object",
    "properties": {
        "content_id": {"type": "string", "minLength": 1},
        "name": {"type": "string"},
        "total_bytes": {"type": "integer", "minimum": 0},
        "completed_bytes": {"type": "integer", "minimum": 0},
        "rate_bytes": {"type": "integer", "minimum": 0},
        "state": {"type": "string", "enum": [s.value for s in TaskState]},
        "worker_status": {"type": "string"},
        "worker_port": {"type": ["integer", "null"], "minimum": 1, "maximum": 65535},
        "worker_group_id": _OPTIONAL_INT,
        "worker_secret": {"type": ["string", "null"]},
        "seeders": {"type": "integer"},
        "leechers": {"type": "integer"},
        "file_count": {"type": "integer", "minimum": 0},
    },
    "required": ["content_id", "name"],
}

# JSON Schema for the state file
STATE_SCHEMA = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "title": "Sailor download state",
    "type": "array",
    "items": TASK_SCHEMA,
}

_validator = Draft7Validator(STATE_SCHEMA)


def validate_state_records(records: Any) -> tuple[bool, list[str]]:
    """
    Validate a decoded state document against the schema.

    Args:
        records: The value decoded from the state file.

    Returns:
        Tuple of (is_valid, error_messages)
    """
    errors = sorted(_validator.iter_errors(records), key=lambda e: list(e.path))
    if not errors:
        return True, []

    error_messages = []
    for error in errors:
        path = ".".join(str(p) for p in error.path) if error.path else "root"
        error_messages.append(f"{path}: {error.message}")
    return False, error_messages
