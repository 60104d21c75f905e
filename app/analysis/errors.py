"""Failure taxonomy for the analysis pipeline."""

from enum import Enum


class AnalysisErrorKind(str, Enum):
    TRANSPORT = "transport"
    PARSE_FAILURE = "parse_failure"
    SCHEMA_VIOLATION = "schema_violation"


_LABELS = {
    AnalysisErrorKind.TRANSPORT: "Inference service error",
    AnalysisErrorKind.PARSE_FAILURE: "Could not parse analysis response",
    AnalysisErrorKind.SCHEMA_VIOLATION: "Invalid analysis response",
}


class AnalysisError(Exception):
    """Raised when a label image cannot be turned into a valid AnalysisResult.

    str(error) is the message stored on the failed job.
    """

    def __init__(self, kind: AnalysisErrorKind, message: str):
        self.kind = AnalysisErrorKind(kind)
        self.message = message
        super().__init__(f"{_LABELS[self.kind]}: {message}")
