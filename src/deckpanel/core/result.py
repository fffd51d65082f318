"""
Tagged result for validated model output.
"""
from dataclasses import dataclass
from typing import Any, Dict, Generic, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError

from deckpanel.core.errors import UpstreamError

T = TypeVar("T")
M = TypeVar("M", bound=BaseModel)


@dataclass(frozen=True)
class Success(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True

    def unwrap(self) -> T:
        return self.value


@dataclass(frozen=True)
class Failure:
    reason: str

    @property
    def ok(self) -> bool:
        return False

    def unwrap(self):
        raise UpstreamError(self.reason)


Result = Union[Success[T], Failure]


def _describe(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors()[:5]:
        location = ".".join(str(p) for p in error.get("loc", ())) or "(root)"
        parts.append(f"{location}: {error.get('msg', 'invalid')}")
    return "; ".join(parts)


def validate_completion(schema: Type[M], payload: Dict[str, Any], *, context: str) -> Result[M]:
    """
    Validate a parsed completion against its schema.
    """
    try:
        return Success(schema.model_validate(payload))
    except ValidationError as e:
        return Failure(f"{context}: model output did not match the expected shape ({_describe(e)})")
