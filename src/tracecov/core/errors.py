"""tracecov error types with typed error codes.

Error code ranges:
- 1xxx: Validation (bad caller input)
- 2xxx: Config
- 3xxx: Parse (malformed source, analysis budgets)
- 4xxx: Source I/O
- 5xxx: Consistency (structural orphans, cycles, invariant breaches)
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any


class ErrorCode(IntEnum):
    """Typed error codes for programmatic handling."""

    # Validation (1xxx)
    VALIDATION_MISSING_PATH = 1001
    VALIDATION_LINE_OUT_OF_RANGE = 1002
    VALIDATION_UNKNOWN_BLOCK = 1003
    VALIDATION_UNKNOWN_CONDITION = 1004
    VALIDATION_UNKNOWN_FUNCTION = 1005
    VALIDATION_SESSION_STATE = 1006
    VALIDATION_UNKNOWN_FILE = 1007
    VALIDATION_DUPLICATE_ID = 1008
    VALIDATION_INVALID_SNAPSHOT = 1009

    # Config (2xxx)
    CONFIG_PARSE_ERROR = 2001
    CONFIG_INVALID_VALUE = 2002
    CONFIG_FILE_NOT_FOUND = 2004

    # Parse (3xxx)
    PARSE_SYNTAX = 3001
    PARSE_BUDGET_EXCEEDED = 3002

    # Source I/O (4xxx)
    SOURCE_UNREADABLE = 4001

    # Consistency (5xxx)
    CONSISTENCY_CYCLE = 5001
    CONSISTENCY_ORPHAN = 5002
    CONSISTENCY_CONTAINMENT = 5003
    CONSISTENCY_NO_EVIDENCE = 5004


@dataclass(frozen=True, slots=True)
class TracecovError(Exception):
    """Base error with structured context."""

    code: ErrorCode
    message: str
    retryable: bool = False
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def error_name(self) -> str:
        """String identifier for logging (e.g., 'PARSE_SYNTAX')."""
        return self.code.name

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON reports."""
        return {
            "code": self.code.value,
            "error": self.error_name,
            "message": self.message,
            "retryable": self.retryable,
            "details": self.details,
        }

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.error_name}: {self.message}"


class ValidationError(TracecovError):
    """Bad caller input: missing path, out-of-range line, unknown ids."""

    @classmethod
    def missing_path(cls) -> "ValidationError":
        return cls(
            code=ErrorCode.VALIDATION_MISSING_PATH,
            message="A file path is required",
        )

    @classmethod
    def line_out_of_range(cls, path: str, line: int, line_count: int) -> "ValidationError":
        return cls(
            code=ErrorCode.VALIDATION_LINE_OUT_OF_RANGE,
            message=f"Line {line} is outside 1..{line_count} in {path}",
            details={"path": path, "line": line, "line_count": line_count},
        )

    @classmethod
    def unknown_block(cls, path: str, block_id: int) -> "ValidationError":
        return cls(
            code=ErrorCode.VALIDATION_UNKNOWN_BLOCK,
            message=f"Unknown block {block_id} in {path}",
            details={"path": path, "block_id": block_id},
        )

    @classmethod
    def unknown_condition(cls, path: str, condition_id: int) -> "ValidationError":
        return cls(
            code=ErrorCode.VALIDATION_UNKNOWN_CONDITION,
            message=f"Unknown condition {condition_id} in {path}",
            details={"path": path, "condition_id": condition_id},
        )

    @classmethod
    def unknown_function(cls, path: str, function_id: int) -> "ValidationError":
        return cls(
            code=ErrorCode.VALIDATION_UNKNOWN_FUNCTION,
            message=f"Unknown function {function_id} in {path}",
            details={"path": path, "function_id": function_id},
        )

    @classmethod
    def unknown_file(cls, path: str) -> "ValidationError":
        return cls(
            code=ErrorCode.VALIDATION_UNKNOWN_FILE,
            message=f"File is not tracked: {path}",
            details={"path": path},
        )

    @classmethod
    def duplicate_id(cls, path: str, kind: str, item_id: int) -> "ValidationError":
        return cls(
            code=ErrorCode.VALIDATION_DUPLICATE_ID,
            message=f"{kind} {item_id} already exists in {path}",
            details={"path": path, "kind": kind, "id": item_id},
        )

    @classmethod
    def invalid_snapshot(cls, reason: str) -> "ValidationError":
        return cls(
            code=ErrorCode.VALIDATION_INVALID_SNAPSHOT,
            message=f"Invalid coverage snapshot: {reason}",
            details={"reason": reason},
        )

    @classmethod
    def session_state(cls, operation: str, state: str) -> "ValidationError":
        return cls(
            code=ErrorCode.VALIDATION_SESSION_STATE,
            message=f"Cannot {operation} while session is {state}",
            details={"operation": operation, "state": state},
        )


class ConfigError(TracecovError):
    """Configuration-related errors."""

    @classmethod
    def parse_error(cls, path: str, reason: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_PARSE_ERROR,
            message=f"Failed to parse config at {path}: {reason}",
            details={"path": path, "reason": reason},
        )

    @classmethod
    def invalid_value(cls, field: str, value: Any, reason: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_INVALID_VALUE,
            message=f"Invalid value for '{field}': {reason}",
            details={"field": field, "value": str(value), "reason": reason},
        )

    @classmethod
    def file_not_found(cls, path: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_FILE_NOT_FOUND,
            message=f"Config file not found: {path}",
            details={"path": path},
        )


class ParseError(TracecovError):
    """Malformed source or analysis that could not finish within budget."""

    @classmethod
    def syntax(cls, path: str, reason: str, line: int | None = None) -> "ParseError":
        return cls(
            code=ErrorCode.PARSE_SYNTAX,
            message=f"Cannot parse {path}: {reason}",
            details={"path": path, "reason": reason, "line": line},
        )

    @classmethod
    def budget_exceeded(cls, path: str, budget: str, limit: int) -> "ParseError":
        return cls(
            code=ErrorCode.PARSE_BUDGET_EXCEEDED,
            message=f"Analysis of {path} exceeded {budget} budget ({limit})",
            details={"path": path, "budget": budget, "limit": limit},
        )


class SourceReadError(TracecovError):
    """A tracked file could not be read."""

    @classmethod
    def unreadable(cls, path: str, reason: str) -> "SourceReadError":
        return cls(
            code=ErrorCode.SOURCE_UNREADABLE,
            message=f"Cannot read {path}: {reason}",
            retryable=True,
            details={"path": path, "reason": reason},
        )


class ConsistencyError(TracecovError):
    """Structural graph or runtime state violates a coverage invariant."""

    @classmethod
    def cycle(cls, path: str, kind: str, ids: list[int]) -> "ConsistencyError":
        return cls(
            code=ErrorCode.CONSISTENCY_CYCLE,
            message=f"Parent cycle among {kind}s {ids} in {path}",
            details={"path": path, "kind": kind, "ids": ids},
        )

    @classmethod
    def orphan(cls, path: str, kind: str, item_id: int, parent_id: int | None) -> "ConsistencyError":
        return cls(
            code=ErrorCode.CONSISTENCY_ORPHAN,
            message=f"{kind} {item_id} references missing parent {parent_id} in {path}",
            details={"path": path, "kind": kind, "id": item_id, "parent_id": parent_id},
        )

    @classmethod
    def containment(cls, path: str, block_id: int, parent_id: int) -> "ConsistencyError":
        return cls(
            code=ErrorCode.CONSISTENCY_CONTAINMENT,
            message=f"Block {block_id} is not contained in parent {parent_id} in {path}",
            details={"path": path, "block_id": block_id, "parent_id": parent_id},
        )

    @classmethod
    def execution_without_evidence(cls, path: str, block_id: int) -> "ConsistencyError":
        return cls(
            code=ErrorCode.CONSISTENCY_NO_EVIDENCE,
            message=f"Block {block_id} marked executed with no executed line in range in {path}",
            details={"path": path, "block_id": block_id},
        )

