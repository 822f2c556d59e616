"""
vaultharness/core/models.py

Data Model - immutable chunks, mutable data, entry actions, permissions,
account records.

═══════════════════════════════════════════════════════════════════
CONTRACTS
═══════════════════════════════════════════════════════════════════

CONTRACT 1 - Immutable data is content addressed
    name = SHA3-256(value). Equal bytes are the same record.

CONTRACT 2 - Entry versions
    A new entry starts at entry_version 0.
    Update / Del must carry exactly current_version + 1.
    Ins must target an absent key.

CONTRACT 3 - Batches are atomic
    mutate_entries() applies every action or none. Per-key failures are
    reported together as INVALID_ENTRY_ACTIONS {key: EntryError}.

CONTRACT 4 - Shell version
    Permission and owner changes carry version == shell version + 1
    and bump it on success. Entry mutations never touch it.

CONTRACT 5 - Limits
    at most one owner, at most MAX_MUTABLE_DATA_ENTRIES entries,
    serialised size at most MAX_MUTABLE_DATA_SIZE_IN_BYTES.
═══════════════════════════════════════════════════════════════════
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, Iterable, List, Optional

from vaultharness.core import canonical
from vaultharness.core.crypto import PublicSignKey
from vaultharness.core.exceptions import ClientError, ClientErrorCode
from vaultharness.core.xor_name import XOR_NAME_LEN, XorName


# ─────────────────────────────────────────────────────────────
# Protocol Constants
# ─────────────────────────────────────────────────────────────

TYPE_TAG_SESSION_PACKET = 0
ACC_LOGIN_ENTRY_KEY     = b"Login"

MAX_IMMUTABLE_DATA_SIZE_IN_BYTES = 1024 * 1024 + 10 * 1024
MAX_MUTABLE_DATA_SIZE_IN_BYTES   = 1024 * 1024
MAX_MUTABLE_DATA_ENTRIES         = 100

# Fixed per-record overhead counted towards the serialised size:
# name + tag + shell version
_MDATA_HEADER_SIZE = XOR_NAME_LEN + 8 + 8
# Per-entry overhead: entry_version
_ENTRY_OVERHEAD    = 8


# ─────────────────────────────────────────────────────────────
# Immutable Data
# ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ImmutableData:
    """Content-addressed blob. See CONTRACT 1."""

    value: bytes

    @property
    def name(self) -> XorName:
        return XorName.from_content(self.value)

    def serialised_size(self) -> int:
        return len(self.value)

    def __repr__(self) -> str:
        return f"ImmutableData(name={self.name!r}, size={len(self.value)})"


# ─────────────────────────────────────────────────────────────
# Entries and Entry Actions
# ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Value:
    """A mutable data entry value."""

    content:       bytes
    entry_version: int = 0


class EntryActionKind(str, Enum):
    INS    = "ins"
    UPDATE = "update"
    DEL    = "del"


@dataclass(frozen=True)
class EntryAction:
    """
    One mutation of a single entry.

        EntryAction.ins(content)              → insert, version 0
        EntryAction.update(content, version)  → replace, version = current + 1
        EntryAction.delete(version)           → remove,  version = current + 1
    """

    kind:    EntryActionKind
    version: int
    content: Optional[bytes] = None

    @classmethod
    def ins(cls, content: bytes, version: int = 0) -> "EntryAction":
        return cls(EntryActionKind.INS, version, content)

    @classmethod
    def update(cls, content: bytes, version: int) -> "EntryAction":
        return cls(EntryActionKind.UPDATE, version, content)

    @classmethod
    def delete(cls, version: int) -> "EntryAction":
        return cls(EntryActionKind.DEL, version)

    def to_value(self) -> Value:
        if self.content is None:
            raise ValueError("a delete action carries no value")
        return Value(content=self.content, entry_version=self.version)


class EntryActions:
    """
    Fluent builder for an entry action batch.

        actions = EntryActions().ins(k1, b"a").update(k2, b"b", 3).into_dict()

    A later action on the same key replaces the earlier one, so the result
    never targets a key twice.
    """

    def __init__(self) -> None:
        self._actions: Dict[bytes, EntryAction] = {}

    def ins(self, key: bytes, content: bytes, version: int = 0) -> "EntryActions":
        self._actions[bytes(key)] = EntryAction.ins(content, version)
        return self

    def update(self, key: bytes, content: bytes, version: int) -> "EntryActions":
        self._actions[bytes(key)] = EntryAction.update(content, version)
        return self

    def delete(self, key: bytes, version: int) -> "EntryActions":
        self._actions[bytes(key)] = EntryAction.delete(version)
        return self

    def into_dict(self) -> Dict[bytes, EntryAction]:
        return dict(self._actions)

    def __len__(self) -> int:
        return len(self._actions)

    def __contains__(self, key: bytes) -> bool:
        return key in self._actions


class EntryErrorKind(str, Enum):
    NO_SUCH_ENTRY     = "no_such_entry"
    ENTRY_EXISTS      = "entry_exists"
    INVALID_SUCCESSOR = "invalid_successor"


@dataclass(frozen=True)
class EntryError:
    """Why a single entry action was rejected. version = current version."""

    kind:    EntryErrorKind
    version: Optional[int] = None


# ─────────────────────────────────────────────────────────────
# Permissions
# ─────────────────────────────────────────────────────────────

class Action(str, Enum):
    INSERT             = "insert"
    UPDATE             = "update"
    DELETE             = "delete"
    MANAGE_PERMISSIONS = "manage_permissions"


_ENTRY_ACTION_PERMISSION = {
    EntryActionKind.INS:    Action.INSERT,
    EntryActionKind.UPDATE: Action.UPDATE,
    EntryActionKind.DEL:    Action.DELETE,
}


@dataclass(frozen=True)
class User:
    """Permission subject: a specific key, or anyone (key is None)."""

    key: Optional[PublicSignKey] = None

    @classmethod
    def anyone(cls) -> "User":
        return cls(None)

    @property
    def is_anyone(self) -> bool:
        return self.key is None

    def __repr__(self) -> str:
        return "User(Anyone)" if self.key is None else f"User({self.key!r})"


@dataclass
class PermissionSet:
    """
    Per-action allow / deny. An action absent from the set is unset, which
    defers the decision to the Anyone entry.
    """

    rules: Dict[Action, bool] = field(default_factory=dict)

    def allow(self, action: Action) -> "PermissionSet":
        self.rules[action] = True
        return self

    def deny(self, action: Action) -> "PermissionSet":
        self.rules[action] = False
        return self

    def clear(self, action: Action) -> "PermissionSet":
        self.rules.pop(action, None)
        return self

    def is_allowed(self, action: Action) -> Optional[bool]:
        return self.rules.get(action)

    def copy(self) -> "PermissionSet":
        return PermissionSet(dict(self.rules))


# ─────────────────────────────────────────────────────────────
# Mutable Data
# ─────────────────────────────────────────────────────────────

class MutableData:
    """
    Versioned key/value record identified by (name, tag).

    MutableData.new() validates CONTRACT 5 and raises ClientError.
    The constructor itself trusts its input; the network uses it to
    rebuild records it already validated.
    """

    def __init__(
        self,
        name:        XorName,
        tag:         int,
        permissions: Dict[User, PermissionSet],
        entries:     Dict[bytes, Value],
        owners:      Iterable[PublicSignKey],
        version:     int = 0,
    ) -> None:
        self.name        = name
        self.tag         = tag
        self.version     = version
        self.owners: FrozenSet[PublicSignKey]       = frozenset(owners)
        self.permissions: Dict[User, PermissionSet] = {
            user: perms.copy() for user, perms in permissions.items()
        }
        self.entries: Dict[bytes, Value] = dict(entries)

    @classmethod
    def new(
        cls,
        name:        XorName,
        tag:         int,
        permissions: Dict[User, PermissionSet],
        entries:     Dict[bytes, Value],
        owners:      Iterable[PublicSignKey],
    ) -> "MutableData":
        data = cls(name, tag, permissions, entries, owners)
        data.validate()
        return data

    # ── Accessors ─────────────────────────────────────────────

    def keys(self) -> List[bytes]:
        """Entry keys in sorted order."""
        return sorted(self.entries)

    def get(self, key: bytes) -> Optional[Value]:
        return self.entries.get(key)

    def shell(self) -> "MutableData":
        """Copy without entries."""
        return MutableData(
            self.name, self.tag, self.permissions, {}, self.owners, self.version
        )

    def copy(self) -> "MutableData":
        return MutableData(
            self.name, self.tag, self.permissions, self.entries, self.owners, self.version
        )

    def user_permissions(self, user: User) -> PermissionSet:
        perms = self.permissions.get(user)
        if perms is None:
            raise ClientError(ClientErrorCode.NO_SUCH_KEY)
        return perms.copy()

    def serialised_size(self) -> int:
        size = _MDATA_HEADER_SIZE
        size += sum(len(k) + len(v.content) + _ENTRY_OVERHEAD for k, v in self.entries.items())
        size += 32 * len(self.owners)
        size += (32 + len(Action)) * len(self.permissions)
        return size

    # ── Validation ────────────────────────────────────────────

    def validate(self) -> None:
        """Raise ClientError if CONTRACT 5 is violated."""
        if len(self.owners) > 1:
            raise ClientError(
                ClientErrorCode.INVALID_OWNERS,
                details={"owners": len(self.owners)},
            )
        if len(self.entries) > MAX_MUTABLE_DATA_ENTRIES:
            raise ClientError(
                ClientErrorCode.TOO_MANY_ENTRIES,
                details={"entries": len(self.entries)},
            )
        if self.serialised_size() > MAX_MUTABLE_DATA_SIZE_IN_BYTES:
            raise ClientError(ClientErrorCode.DATA_TOO_LARGE)

    # ── Authorisation ─────────────────────────────────────────

    def is_action_allowed(self, requester: PublicSignKey, action: Action) -> bool:
        """Owners may do anything; otherwise key rules win over Anyone."""
        if requester in self.owners:
            return True
        specific = self.permissions.get(User(requester))
        if specific is not None:
            decision = specific.is_allowed(action)
            if decision is not None:
                return decision
        anyone = self.permissions.get(User.anyone())
        if anyone is not None:
            return bool(anyone.is_allowed(action))
        return False

    def _check_version(self, version: int) -> None:
        if version != self.version + 1:
            raise ClientError(
                ClientErrorCode.INVALID_SUCCESSOR,
                details={"current": self.version},
            )

    # ── Mutation ──────────────────────────────────────────────

    def mutate_entries(
        self,
        actions:   Dict[bytes, EntryAction],
        requester: PublicSignKey,
    ) -> None:
        """Apply a batch atomically. See CONTRACT 2 and 3."""
        for action in actions.values():
            if not self.is_action_allowed(requester, _ENTRY_ACTION_PERMISSION[action.kind]):
                raise ClientError(ClientErrorCode.ACCESS_DENIED)

        new_entries = dict(self.entries)
        errors: Dict[bytes, EntryError] = {}

        for key, action in actions.items():
            current = new_entries.get(key)
            if action.kind is EntryActionKind.INS:
                if current is not None:
                    errors[key] = EntryError(EntryErrorKind.ENTRY_EXISTS, current.entry_version)
                    continue
                new_entries[key] = action.to_value()
            elif current is None:
                errors[key] = EntryError(EntryErrorKind.NO_SUCH_ENTRY)
            elif action.version != current.entry_version + 1:
                errors[key] = EntryError(
                    EntryErrorKind.INVALID_SUCCESSOR, current.entry_version
                )
            elif action.kind is EntryActionKind.UPDATE:
                new_entries[key] = action.to_value()
            else:
                del new_entries[key]

        if errors:
            raise ClientError(
                ClientErrorCode.INVALID_ENTRY_ACTIONS,
                details={"errors": errors},
            )

        candidate = MutableData(
            self.name, self.tag, self.permissions, new_entries, self.owners, self.version
        )
        candidate.validate()
        self.entries = new_entries

    def set_user_permissions(
        self,
        user:        User,
        permissions: PermissionSet,
        version:     int,
        requester:   PublicSignKey,
    ) -> None:
        if not self.is_action_allowed(requester, Action.MANAGE_PERMISSIONS):
            raise ClientError(ClientErrorCode.ACCESS_DENIED)
        self._check_version(version)
        self.permissions[user] = permissions.copy()
        self.version = version

    def del_user_permissions(
        self,
        user:      User,
        version:   int,
        requester: PublicSignKey,
    ) -> None:
        if not self.is_action_allowed(requester, Action.MANAGE_PERMISSIONS):
            raise ClientError(ClientErrorCode.ACCESS_DENIED)
        if user not in self.permissions:
            raise ClientError(ClientErrorCode.NO_SUCH_KEY)
        self._check_version(version)
        del self.permissions[user]
        self.version = version

    def change_owner(
        self,
        new_owners: Iterable[PublicSignKey],
        version:    int,
        requester:  PublicSignKey,
    ) -> None:
        if requester not in self.owners:
            raise ClientError(ClientErrorCode.ACCESS_DENIED)
        new_owners = frozenset(new_owners)
        if len(new_owners) != 1:
            raise ClientError(
                ClientErrorCode.INVALID_OWNERS,
                details={"owners": len(new_owners)},
            )
        self._check_version(version)
        self.owners  = new_owners
        self.version = version

    # ── Equality ──────────────────────────────────────────────

    def __eq__(self, other) -> bool:
        if not isinstance(other, MutableData):
            return NotImplemented
        return (
            self.name        == other.name
            and self.tag     == other.tag
            and self.version == other.version
            and self.owners  == other.owners
            and self.entries == other.entries
            and self.permissions == other.permissions
        )

    __hash__ = None

    def __repr__(self) -> str:
        return (
            f"MutableData(name={self.name!r}, tag={self.tag}, "
            f"version={self.version}, entries={len(self.entries)})"
        )


# ─────────────────────────────────────────────────────────────
# Accounts
# ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class AccountInfo:
    mutations_done:      int
    mutations_available: int


@dataclass(frozen=True)
class AccountPacket:
    """
    Login packet stored under ACC_LOGIN_ENTRY_KEY of a session packet.

    Serialised with canonical JSON; acc_pkt travels hex-encoded.
    """

    acc_pkt:           bytes         = b""
    invitation_string: Optional[str] = None

    @classmethod
    def with_invitation(cls, invitation_string: str, acc_pkt: bytes = b"") -> "AccountPacket":
        return cls(acc_pkt=acc_pkt, invitation_string=invitation_string)

    def to_dict(self) -> dict:
        if self.invitation_string is None:
            return {"kind": "acc_pkt", "acc_pkt": self.acc_pkt.hex()}
        return {
            "kind":              "with_invitation",
            "invitation_string": self.invitation_string,
            "acc_pkt":           self.acc_pkt.hex(),
        }

    def serialise(self) -> bytes:
        return canonical.serialise(self.to_dict())

    @classmethod
    def deserialise(cls, data: bytes) -> "AccountPacket":
        """Raises ValueError if data is not a serialised AccountPacket."""
        obj = canonical.deserialise(data)
        try:
            kind    = obj["kind"]
            acc_pkt = bytes.fromhex(obj["acc_pkt"])
        except (KeyError, TypeError, ValueError) as exc:
            raise ValueError(f"malformed account packet: {exc}") from exc
        if kind == "acc_pkt":
            return cls(acc_pkt=acc_pkt)
        if kind == "with_invitation" and isinstance(obj.get("invitation_string"), str):
            return cls(acc_pkt=acc_pkt, invitation_string=obj["invitation_string"])
        raise ValueError(f"unknown account packet kind {kind!r}")
