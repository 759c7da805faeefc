"""Errors raised by the review and decay callers of the memory engine."""


class WordmasterError(Exception):
    """Base class for wordmaster errors."""
    code = 'wordmaster_error'
    status = 400

    def __init__(self, message, details=None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class RecordNotFound(WordmasterError):
    """The user word doesn't exist or belongs to someone else."""
    code = 'record_not_found'
    status = 404


class ConcurrentWriteConflict(WordmasterError):
    """The record kept changing underneath us; retry with fresh state."""
    code = 'concurrent_write_conflict'
    status = 409


class MalformedReviewHistory(WordmasterError):
    """The review window contains events the engine must not see."""
    code = 'malformed_review_history'
    status = 422


class InvalidWord(WordmasterError):
    """Word text the vocabulary can't store."""
    code = 'invalid_word'
    status = 400
