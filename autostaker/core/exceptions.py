from __future__ import annotations

from typing import Optional


class ProviderMisconfigured(RuntimeError):
    pass


class UpstreamError(RuntimeError):
    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class UpstreamRateLimited(UpstreamError):
    pass


class UpstreamBadResponse(UpstreamError):
    pass


class ConfigError(ValueError):
    pass


class LedgerError(RuntimeError):
    pass


class LedgerReverted(LedgerError):
    pass


class ConfirmationTimeout(LedgerError):
    def __init__(self, tx_hash: str, timeout_sec: float) -> None:
        super().__init__(f"Transaction {tx_hash} not confirmed within {timeout_sec:g}s")
        self.tx_hash = tx_hash
        self.timeout_sec = timeout_sec


class RunInProgress(RuntimeError):
    pass
