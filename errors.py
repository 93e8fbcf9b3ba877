"""Errors raised by the approval workflow.

Each error carries an HTTP-equivalent ``status_code`` and a ``detail`` message
so a transport layer can map them one to one.
"""


class WorkflowError(Exception):
    status_code = 500

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(detail)


class NotFoundError(WorkflowError):
    status_code = 404


class UnauthorizedError(WorkflowError):
    status_code = 403


class ConflictError(WorkflowError):
    status_code = 409


class InvalidInputError(WorkflowError):
    status_code = 400


class ConfigurationGapError(WorkflowError):
    """No approver could be resolved where the chain needed one."""

    status_code = 422


class CurrencyConversionError(WorkflowError):
    status_code = 502
