"""
vaultharness/core/messages.py

Wire-level vocabulary shared by the harness and the simulated network.

    MessageId  - 32 random bytes; the ONLY correlation key
    Request    - one frozen dataclass per request kind, each with a KIND
    Response   - (kind, result, msg_id)
    Result     - success value or ClientError, returned not raised
    Events     - Connected, Terminated, RestartRequired,
                 ResponseEvent, RequestEvent

A response answers the request with the same msg_id and the same kind.
Nothing else (ordering, sequence numbers) is implied.
"""

import random
import secrets
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, ClassVar, Dict, FrozenSet, Optional, Union

from vaultharness.core.authority import Authority
from vaultharness.core.crypto import PublicSignKey
from vaultharness.core.exceptions import ClientError, ClientErrorCode
from vaultharness.core.models import (
    EntryAction,
    ImmutableData,
    MutableData,
    PermissionSet,
    User,
)
from vaultharness.core.xor_name import XorName

_MSG_ID_LEN = 32


class MessageId(bytes):
    """Request/response correlation identifier."""

    def __new__(cls, value: bytes) -> "MessageId":
        if len(value) != _MSG_ID_LEN:
            raise ValueError(f"MessageId must be {_MSG_ID_LEN} bytes, got {len(value)}")
        return super().__new__(cls, value)

    @classmethod
    def new(cls, rng: Optional[random.Random] = None) -> "MessageId":
        if rng is None:
            return cls(secrets.token_bytes(_MSG_ID_LEN))
        return cls(rng.getrandbits(8 * _MSG_ID_LEN).to_bytes(_MSG_ID_LEN, "big"))

    def __repr__(self) -> str:
        return f"MessageId({self.hex()[:8]}..)"


# ─────────────────────────────────────────────────────────────
# Result
# ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Result:
    """
    Outcome carried by a response.

    Returned, not raised, so callers can assert on either branch.
    bool(result) is True iff it is a success.
    """

    value: Any                   = None
    error: Optional[ClientError] = None

    @classmethod
    def ok(cls, value: Any = None) -> "Result":
        return cls(value=value)

    @classmethod
    def err(cls, error: Union[ClientError, ClientErrorCode]) -> "Result":
        if isinstance(error, ClientErrorCode):
            error = ClientError(error)
        return cls(error=error)

    @property
    def is_ok(self) -> bool:
        return self.error is None

    def __bool__(self) -> bool:
        return self.is_ok

    def unwrap(self) -> Any:
        """Return the value, or raise the carried ClientError."""
        if self.error is not None:
            raise self.error
        return self.value

    def map(self, fn: Callable[[Any], Any]) -> "Result":
        if self.error is not None:
            return self
        return Result.ok(fn(self.value))

    def __repr__(self) -> str:
        if self.error is None:
            return f"Result.ok({self.value!r})"
        return f"Result.err({self.error!r})"


# ─────────────────────────────────────────────────────────────
# Requests
# ─────────────────────────────────────────────────────────────

class RequestKind(str, Enum):
    PUT_IDATA                   = "put_idata"
    GET_IDATA                   = "get_idata"
    PUT_MDATA                   = "put_mdata"
    GET_MDATA_VERSION           = "get_mdata_version"
    GET_MDATA_SHELL             = "get_mdata_shell"
    LIST_MDATA_ENTRIES          = "list_mdata_entries"
    GET_MDATA_VALUE             = "get_mdata_value"
    MUTATE_MDATA_ENTRIES        = "mutate_mdata_entries"
    LIST_MDATA_PERMISSIONS      = "list_mdata_permissions"
    LIST_MDATA_USER_PERMISSIONS = "list_mdata_user_permissions"
    SET_MDATA_USER_PERMISSIONS  = "set_mdata_user_permissions"
    DEL_MDATA_USER_PERMISSIONS  = "del_mdata_user_permissions"
    CHANGE_MDATA_OWNER          = "change_mdata_owner"
    GET_ACCOUNT_INFO            = "get_account_info"
    LIST_AUTH_KEYS_AND_VERSION  = "list_auth_keys_and_version"
    INS_AUTH_KEY                = "ins_auth_key"
    DEL_AUTH_KEY                = "del_auth_key"


@dataclass(frozen=True)
class Request:
    """Base of every request. Subclasses set KIND."""

    KIND: ClassVar[RequestKind]

    msg_id: MessageId

    @property
    def kind(self) -> RequestKind:
        return self.KIND


@dataclass(frozen=True)
class PutIData(Request):
    KIND = RequestKind.PUT_IDATA
    data: ImmutableData


@dataclass(frozen=True)
class GetIData(Request):
    KIND = RequestKind.GET_IDATA
    name: XorName


@dataclass(frozen=True)
class PutMData(Request):
    KIND = RequestKind.PUT_MDATA
    data:      MutableData
    requester: PublicSignKey


@dataclass(frozen=True)
class GetMDataVersion(Request):
    KIND = RequestKind.GET_MDATA_VERSION
    name: XorName
    tag:  int


@dataclass(frozen=True)
class GetMDataShell(Request):
    KIND = RequestKind.GET_MDATA_SHELL
    name: XorName
    tag:  int


@dataclass(frozen=True)
class ListMDataEntries(Request):
    KIND = RequestKind.LIST_MDATA_ENTRIES
    name: XorName
    tag:  int


@dataclass(frozen=True)
class GetMDataValue(Request):
    KIND = RequestKind.GET_MDATA_VALUE
    name: XorName
    tag:  int
    key:  bytes


@dataclass(frozen=True)
class MutateMDataEntries(Request):
    KIND = RequestKind.MUTATE_MDATA_ENTRIES
    name:      XorName
    tag:       int
    actions:   Dict[bytes, EntryAction]
    requester: PublicSignKey


@dataclass(frozen=True)
class ListMDataPermissions(Request):
    KIND = RequestKind.LIST_MDATA_PERMISSIONS
    name: XorName
    tag:  int


@dataclass(frozen=True)
class ListMDataUserPermissions(Request):
    KIND = RequestKind.LIST_MDATA_USER_PERMISSIONS
    name: XorName
    tag:  int
    user: User


@dataclass(frozen=True)
class SetMDataUserPermissions(Request):
    KIND = RequestKind.SET_MDATA_USER_PERMISSIONS
    name:        XorName
    tag:         int
    user:        User
    permissions: PermissionSet
    version:     int
    requester:   PublicSignKey


@dataclass(frozen=True)
class DelMDataUserPermissions(Request):
    KIND = RequestKind.DEL_MDATA_USER_PERMISSIONS
    name:      XorName
    tag:       int
    user:      User
    version:   int
    requester: PublicSignKey


@dataclass(frozen=True)
class ChangeMDataOwner(Request):
    KIND = RequestKind.CHANGE_MDATA_OWNER
    name:       XorName
    tag:        int
    new_owners: FrozenSet[PublicSignKey]
    version:    int


@dataclass(frozen=True)
class GetAccountInfo(Request):
    KIND = RequestKind.GET_ACCOUNT_INFO


@dataclass(frozen=True)
class ListAuthKeysAndVersion(Request):
    KIND = RequestKind.LIST_AUTH_KEYS_AND_VERSION


@dataclass(frozen=True)
class InsAuthKey(Request):
    KIND = RequestKind.INS_AUTH_KEY
    key:     PublicSignKey
    version: int


@dataclass(frozen=True)
class DelAuthKey(Request):
    KIND = RequestKind.DEL_AUTH_KEY
    key:     PublicSignKey
    version: int


# ─────────────────────────────────────────────────────────────
# Response and Events
# ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Response:
    kind:   RequestKind
    result: Result
    msg_id: MessageId


@dataclass(frozen=True)
class Connected:
    """The proxy accepted our bootstrap."""


@dataclass(frozen=True)
class Terminated:
    """The network dropped this client."""


@dataclass(frozen=True)
class RestartRequired:
    """The client must rebootstrap. The harness never expects this."""


@dataclass(frozen=True)
class ResponseEvent:
    response: Response
    src:      Authority
    dst:      Authority


@dataclass(frozen=True)
class RequestEvent:
    """A request addressed to the client. The harness never expects this."""

    request: Request
    src:     Authority
    dst:     Authority


Event = Union[Connected, Terminated, RestartRequired, ResponseEvent, RequestEvent]
