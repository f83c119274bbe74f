"""DICOM test helpers.

pynetdicom is never dialed in unit tests. ``FakeAssociationClient`` stands in
for :class:`AssociationClient` and hands out a ``MagicMock`` association whose
``send_c_*`` methods return scripted response streams.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any
from unittest.mock import MagicMock

import httpx
from pydicom import Dataset

from pacsbridge.services.dicom.models import AssociationConfig


def make_status(code: int, **counters: int) -> Dataset:
    """Build a DIMSE status dataset, optionally with sub-operation counters."""
    ds = Dataset()
    ds.Status = code
    for keyword, value in counters.items():
        setattr(ds, keyword, value)
    return ds


def move_status(
    code: int, completed: int = 0, failed: int = 0, warnings: int = 0, remaining: int | None = None
) -> Dataset:
    """Build a C-MOVE response status with the usual counters."""
    counters = {
        "NumberOfCompletedSuboperations": completed,
        "NumberOfFailedSuboperations": failed,
        "NumberOfWarningSuboperations": warnings,
    }
    if remaining is not None:
        counters["NumberOfRemainingSuboperations"] = remaining
    return make_status(code, **counters)


def make_identifier(**elements: Any) -> Dataset:
    ds = Dataset()
    for keyword, value in elements.items():
        setattr(ds, keyword, value)
    return ds


class FakeAssociationClient:
    """Records open/release calls; raises ``error`` from ``open`` if set."""

    def __init__(self, assoc: MagicMock | None = None, error: Exception | None = None):
        self.assoc = assoc or MagicMock()
        self.error = error
        self.opened = 0
        self.released = 0
        self.contexts: list[Any] = []

    @contextmanager
    def open(
        self,
        config: AssociationConfig,
        contexts: Any,
        tls_args: Any = None,
        evt_handlers: Any = None,
        on_open: Any = None,
    ) -> Iterator[MagicMock]:
        self.opened += 1
        self.contexts.append(contexts)
        if self.error is not None:
            raise self.error
        try:
            if on_open is not None:
                on_open(self.assoc)
            yield self.assoc
        finally:
            self.released += 1




class RecordingTransport:
    """httpx mock transport handler serving one canned response and recording requests."""

    def __init__(self, response: httpx.Response | Exception):
        self.response = response
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if isinstance(self.response, Exception):
            raise self.response
        return self.response
