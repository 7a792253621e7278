"""Churn engine exceptions."""

from typing import Optional


class ChurnEngineError(Exception):
    """
    Structured exception for scoring operations.

    Usage:
        try:
            engine.calculate_churn_risk("co_1", "cus_1")
        except ChurnEngineError as e:
            if e.code == "CUSTOMER_NOT_FOUND":
                handle_not_found()
    """

    code: str = "CHURN_ENGINE_ERROR"
    http_status: int = 500

    _default_messages = {
        "CHURN_ENGINE_ERROR": "Churn engine error",
        "CUSTOMER_NOT_FOUND": "Customer not found",
        "INTENT_NOT_FOUND": "No intent data found for customer",
        "UPSTREAM_QUERY_FAILED": "Data store query failed",
        "UNKNOWN_SIGNAL_TYPE": "Unknown signal type",
    }

    def __init__(self, message: Optional[str] = None, **data):
        self.message = message or self._default_messages.get(self.code, self.code)
        self.data = data
        super().__init__(self.message)

    def as_dict(self) -> dict:
        return {"code": self.code, "message": self.message, **self.data}


class CustomerNotFoundError(ChurnEngineError):
    code = "CUSTOMER_NOT_FOUND"
    http_status = 404


class IntentNotFoundError(ChurnEngineError):
    code = "INTENT_NOT_FOUND"
    http_status = 404


class UpstreamQueryError(ChurnEngineError):
    """A data store read or write failed (network, timeout, constraint)."""

    code = "UPSTREAM_QUERY_FAILED"
    http_status = 502


class UnknownSignalTypeError(ChurnEngineError):
    code = "UNKNOWN_SIGNAL_TYPE"
    http_status = 400
