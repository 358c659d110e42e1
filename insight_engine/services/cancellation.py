"""
Cooperative cancellation token shared by the orchestrator and the pipeline.

The orchestrator cancels a token when a newer request for the same
(audit, section) key arrives. The pipeline checks it right before the remote
narration call and right before writing to the cache, so a superseded
request neither spends a remote call nor overwrites newer state.
"""

import threading

from insight_engine.core.exceptions import RequestCancelled


class CancellationToken:
    """Thread-safe one-way flag: once cancelled, always cancelled."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        """
        Raise RequestCancelled when the token has been cancelled.

        Raises:
            RequestCancelled: The request was superseded.
        """
        if self._event.is_set():
            raise RequestCancelled("request superseded by a newer request for the same section")


__all__ = ["CancellationToken"]
