"""Tagged outcomes for cascade layers and external lookups.

A layer that ran and found nothing (``NotFound``) is a valid negative result;
a layer that could not run or choked on its input (``Failed``) is reported
separately so callers and audit notes can tell the two apart.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar, Union

T = TypeVar("T")


@dataclass(frozen=True)
class Found(Generic[T]):
    data: T


@dataclass(frozen=True)
class NotFound:
    reason: str = ""


@dataclass(frozen=True)
class Failed:
    reason: str


LayerResult = Union[Found[T], NotFound, Failed]


def describe(result: LayerResult) -> str:
    """Short human-readable label used in logs and CLI output."""
    if isinstance(result, Found):
        size = len(result.data) if hasattr(result.data, "__len__") else 1
        return f"found {size}"
    if isinstance(result, NotFound):
        return f"nothing found{': ' + result.reason if result.reason else ''}"
    return f"failed: {result.reason}"
