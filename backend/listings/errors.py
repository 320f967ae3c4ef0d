from __future__ import annotations


class ListingsError(Exception):
    pass


class BusinessNotFoundError(ListingsError, LookupError):
    def __init__(self, business_id: int) -> None:
        super().__init__(f"Business {business_id} not found")
        self.business_id = business_id


class BatchNotFoundError(ListingsError, LookupError):
    def __init__(self, batch_id: int) -> None:
        super().__init__(f"Import batch {batch_id} not found")
        self.batch_id = batch_id


class InvalidBatchStatusError(ListingsError, ValueError):
    pass


class AnalysisProviderError(ListingsError):
    """Raised by a language-model analyzer when its response is unusable."""
