class ValuationEngineError(Exception):
    """Base class for errors the engine surfaces to callers."""


class ValidationFailedError(ValuationEngineError):
    """Input or configuration rejected before any computation ran."""
    def __init__(self, message: str, fields: list[str] | None = None):
        self.fields = fields or []
        super().__init__(message)


class NotComputableError(ValuationEngineError):
    """Raised when a valuation cannot be produced from the available data."""
    def __init__(self, message: str, missing_fields: list[str]):
        self.missing_fields = missing_fields
        super().__init__(message)


class ServiceUnavailableError(ValuationEngineError):
    """The external comparable estimator failed, timed out or returned garbage. Retryable."""
    retryable = True


class CompanyNotFoundError(ValuationEngineError):
    def __init__(self, company_id: str):
        self.company_id = company_id
        super().__init__(f"Company '{company_id}' not found")


class SnapshotNotFoundError(ValuationEngineError):
    def __init__(self, snapshot_id: str):
        self.snapshot_id = snapshot_id
        super().__init__(f"Snapshot '{snapshot_id}' not found")
