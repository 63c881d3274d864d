from __future__ import annotations


class CRMError(Exception):
    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class SegmentValidationError(CRMError):
    status_code = 400


class CampaignStateError(CRMError):
    status_code = 400
