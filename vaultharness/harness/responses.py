"""
vaultharness/harness/responses.py

Single response matcher used by every TestClient operation.

    ResponseEvent, same kind, same msg_id   → its Result
    Terminated, termination expected        → Result.err(INVALID_OPERATION)
    anything else (including no event)      → ContractViolation
"""

import logging
from typing import Optional

from vaultharness.core.exceptions import ClientError, ClientErrorCode, ContractViolation
from vaultharness.core.messages import (
    Event,
    MessageId,
    RequestKind,
    ResponseEvent,
    Result,
    Terminated,
)

logger = logging.getLogger(__name__)


def expect_response(
    event:              Optional[Event],
    kind:               RequestKind,
    msg_id:             MessageId,
    expect_termination: bool = False,
) -> Result:
    if isinstance(event, ResponseEvent):
        response = event.response
        if response.kind is kind and response.msg_id == msg_id:
            return response.result

    elif isinstance(event, Terminated) and expect_termination:
        return Result.err(ClientError(ClientErrorCode.INVALID_OPERATION))

    logger.error("expected %s response %r, got %r", kind.value, msg_id, event)
    raise ContractViolation(
        f"unexpected event while waiting for {kind.value} response",
        {"msg_id": msg_id.hex(), "event": event},
    )
