"""
Decoding layer between raw oracle text and typed stage results.

Every stage asks the oracle through :func:`ask`, which returns one of
``Ok``, ``ShapeError`` or ``OracleError`` instead of raising. Call sites
decide per stage whether a failure is skipped, logged or re-raised via
``unwrap()``.
"""
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Generic, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError

from core.errors import OracleCallError, OracleShapeError
from services.llm import Oracle

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

_FENCE = re.compile(r'^```(?:json)?\s*\n?(.*?)\n?```$', re.DOTALL)
_ARRAY = re.compile(r'\[.*\]', re.DOTALL)
_OBJECT = re.compile(r'\{.*\}', re.DOTALL)


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T
    raw: str

    def unwrap(self) -> T:
        return self.value


@dataclass(frozen=True)
class ShapeError:
    raw: str
    reason: str

    def unwrap(self):
        raise OracleShapeError(self.reason, raw=self.raw[:500])


@dataclass(frozen=True)
class OracleError:
    cause: BaseException

    def unwrap(self):
        raise OracleCallError(str(self.cause) or type(self.cause).__name__) from self.cause


DecodeResult = Union[Ok[T], ShapeError, OracleError]


def extract_json(content: str) -> str:
    """
    Extract JSON from LLM response, stripping markdown code blocks if present.
    """
    content = content.strip()

    match = _FENCE.match(content)
    if match:
        return match.group(1).strip()

    if content[:1] in ("{", "["):
        return content

    # Prose around the payload: take whichever JSON container opens first
    candidates = [m for m in (_ARRAY.search(content), _OBJECT.search(content)) if m]
    if candidates:
        return min(candidates, key=lambda m: m.start()).group(0)

    return content


def parse_json(content: str) -> Any:
    """
    Loosely parse oracle text. Unparseable text comes back as ``{"raw": content}``.
    """
    try:
        return json.loads(extract_json(content))
    except (json.JSONDecodeError, TypeError):
        return {"raw": content}


def decode(content: str, schema: Type[T]) -> Union[Ok[T], ShapeError]:
    payload = parse_json(content)
    if isinstance(payload, dict) and set(payload) == {"raw"}:
        return ShapeError(raw=content, reason="Response is not JSON")
    try:
        return Ok(value=schema.model_validate(payload), raw=content)
    except ValidationError as e:
        return ShapeError(raw=content, reason=f"{schema.__name__} validation failed: {e.error_count()} error(s): {e.errors()[0]['msg']}")


async def ask(oracle: Oracle, prompt: str, schema: Type[T]) -> DecodeResult:
    """
    Send the prompt and decode the answer against the schema.
    """
    try:
        content = await oracle.complete(prompt)
    except Exception as e:
        logger.warning(f"Oracle call failed: {e}")
        return OracleError(cause=e)

    logger.debug(f"Raw response: {content[:500]}")
    return decode(content, schema)
