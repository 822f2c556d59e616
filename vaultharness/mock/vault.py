"""
vaultharness/mock/vault.py

Simulated storage node.

Every TestNode plays three roles at once:

    proxy           relays traffic of the clients bootstrapped to it
    client manager  accounts of the client names it is closest to
    data manager    chunks whose name it is closest to

A mutation travels

    client → proxy → client manager → data manager → client manager → proxy → client

and a read skips the client manager. The client manager charges an
account only once the data manager reports success.

poll() processes exactly one inbox packet. Nothing happens between polls.
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, Iterable, List, Optional, Set, Tuple

from vaultharness.core.authority import Authority, AuthorityKind
from vaultharness.core.config import HarnessConfig
from vaultharness.core.crypto import PublicSignKey, client_name_from_key
from vaultharness.core.exceptions import ClientError, ClientErrorCode
from vaultharness.core.messages import (
    ChangeMDataOwner,
    DelAuthKey,
    DelMDataUserPermissions,
    GetAccountInfo,
    GetIData,
    GetMDataShell,
    GetMDataValue,
    GetMDataVersion,
    InsAuthKey,
    ListAuthKeysAndVersion,
    ListMDataEntries,
    ListMDataPermissions,
    ListMDataUserPermissions,
    MessageId,
    MutateMDataEntries,
    PutIData,
    PutMData,
    Request,
    Response,
    Result,
    SetMDataUserPermissions,
)
from vaultharness.core.models import (
    ACC_LOGIN_ENTRY_KEY,
    MAX_IMMUTABLE_DATA_SIZE_IN_BYTES,
    TYPE_TAG_SESSION_PACKET,
    AccountInfo,
    AccountPacket,
    ImmutableData,
    MutableData,
)
from vaultharness.core.xor_name import XorName
from vaultharness.mock.network import (
    Bootstrap,
    BootstrapResponse,
    DataManagerReply,
    Disconnect,
    Forwarded,
    Network,
    Packet,
    bootstrap_challenge,
)

logger = logging.getLogger(__name__)

DEFAULT_ACCOUNT_BALANCE = HarnessConfig.account_balance

_MUTATIONS = (
    PutIData,
    PutMData,
    MutateMDataEntries,
    SetMDataUserPermissions,
    DelMDataUserPermissions,
    ChangeMDataOwner,
)


# ─────────────────────────────────────────────────────────────
# Accounts and Invitations
# ─────────────────────────────────────────────────────────────

@dataclass
class Account:
    owner_key:           PublicSignKey
    mutations_available: int
    mutations_done:      int                = 0
    auth_keys:           Set[PublicSignKey] = field(default_factory=set)
    auth_version:        int                = 0

    @property
    def info(self) -> AccountInfo:
        return AccountInfo(self.mutations_done, self.mutations_available)

    def is_authorised(self, key: PublicSignKey) -> bool:
        return key == self.owner_key or key in self.auth_keys

    def charge(self) -> None:
        self.mutations_done += 1
        self.mutations_available = max(0, self.mutations_available - 1)


class Invitations:
    """Invitation codes shared by every node of one network."""

    def __init__(self, codes: Iterable[str]) -> None:
        self._unclaimed: Set[str] = set(codes)
        self._claimed:   Set[str] = set()

    def claim(self, code: str) -> None:
        if code in self._claimed:
            raise ClientError(ClientErrorCode.INVITATION_ALREADY_CLAIMED)
        if code not in self._unclaimed:
            raise ClientError(ClientErrorCode.INVALID_INVITATION)
        self._unclaimed.remove(code)
        self._claimed.add(code)

    def release(self, code: str) -> None:
        if code in self._claimed:
            self._claimed.remove(code)
            self._unclaimed.add(code)

    def is_claimed(self, code: str) -> bool:
        return code in self._claimed


def _invitation_code(data: MutableData) -> str:
    value = data.get(ACC_LOGIN_ENTRY_KEY)
    if value is None:
        raise ClientError(ClientErrorCode.INVALID_INVITATION)
    try:
        packet = AccountPacket.deserialise(value.content)
    except ValueError as exc:
        raise ClientError(
            ClientErrorCode.INVALID_INVITATION, details={"reason": str(exc)}
        ) from exc
    if packet.invitation_string is None:
        raise ClientError(ClientErrorCode.INVALID_INVITATION)
    return packet.invitation_string


def _data_name(request: Request) -> XorName:
    if isinstance(request, (PutIData, PutMData)):
        return request.data.name
    return request.name


def _respond(packet: Packet, request: Request, result: Result) -> Packet:
    return Packet(
        src=packet.dst,
        dst=packet.src,
        body=Response(request.kind, result, request.msg_id),
    )


# ─────────────────────────────────────────────────────────────
# Client Manager
# ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class _PendingCreation:
    account_name: XorName
    invitation:   Optional[str]


class ClientManager:
    """
    Account bookkeeping.

    Rejections are answered directly. Accepted mutations are forwarded to
    the data manager of the data's name; the reply comes back here and is
    relayed to the originating client.
    """

    def __init__(
        self,
        account_balance: int = DEFAULT_ACCOUNT_BALANCE,
        invitations:     Optional[Invitations] = None,
    ) -> None:
        self.account_balance = account_balance
        self.invitations     = invitations
        self.accounts: Dict[XorName, Account] = {}
        self._pending: Dict[MessageId, _PendingCreation] = {}

    def handle(self, packet: Packet) -> List[Packet]:
        if isinstance(packet.body, DataManagerReply):
            return self._handle_reply(packet)

        request = packet.body
        if not isinstance(request, Request) or not packet.src.is_client:
            logger.warning("client manager dropping %r from %r", request, packet.src)
            return []

        try:
            return self._handle_request(packet, request)
        except ClientError as exc:
            logger.debug("client manager rejects %s: %r", request.kind.value, exc)
            return [_respond(packet, request, Result.err(exc))]

    # ── Requests ──────────────────────────────────────────────

    def _handle_request(self, packet: Packet, request: Request) -> List[Packet]:
        account_name = packet.dst.name
        client_key   = packet.src.client_key

        if isinstance(request, GetAccountInfo):
            account = self._authorised_account(account_name, client_key)
            return [_respond(packet, request, Result.ok(account.info))]

        if isinstance(request, ListAuthKeysAndVersion):
            account = self._owned_account(account_name, client_key)
            listing = (frozenset(account.auth_keys), account.auth_version)
            return [_respond(packet, request, Result.ok(listing))]

        if isinstance(request, InsAuthKey):
            account = self._owned_account(account_name, client_key)
            self._check_auth_version(account, request.version)
            account.auth_keys.add(request.key)
            account.auth_version = request.version
            return [_respond(packet, request, Result.ok())]

        if isinstance(request, DelAuthKey):
            account = self._owned_account(account_name, client_key)
            if request.key not in account.auth_keys:
                raise ClientError(ClientErrorCode.NO_SUCH_KEY)
            self._check_auth_version(account, request.version)
            account.auth_keys.remove(request.key)
            account.auth_version = request.version
            return [_respond(packet, request, Result.ok())]

        if isinstance(request, PutMData) and request.data.tag == TYPE_TAG_SESSION_PACKET:
            return [self._create_account(packet, request)]

        if isinstance(request, _MUTATIONS):
            account = self._authorised_account(account_name, client_key)
            requester = getattr(request, "requester", client_key)
            if requester != client_key:
                raise ClientError(ClientErrorCode.ACCESS_DENIED)
            if isinstance(request, PutMData) and account.owner_key not in request.data.owners:
                raise ClientError(ClientErrorCode.INVALID_OWNERS)
            if account.mutations_available <= 0:
                raise ClientError(ClientErrorCode.LOW_BALANCE)
            return [self._forward(packet, request)]

        raise ClientError(
            ClientErrorCode.INVALID_OPERATION,
            details={"kind": request.kind.value},
        )

    def _create_account(self, packet: Packet, request: PutMData) -> Packet:
        account_name = packet.dst.name
        client_key   = packet.src.client_key

        if client_name_from_key(client_key) != account_name:
            raise ClientError(ClientErrorCode.ACCESS_DENIED)
        if account_name in self.accounts:
            raise ClientError(ClientErrorCode.ACCOUNT_EXISTS)
        if client_key not in request.data.owners:
            raise ClientError(ClientErrorCode.INVALID_OWNERS)

        invitation = None
        if self.invitations is not None:
            invitation = _invitation_code(request.data)
            self.invitations.claim(invitation)

        self.accounts[account_name] = Account(client_key, self.account_balance)
        self._pending[request.msg_id] = _PendingCreation(account_name, invitation)
        logger.debug("account %r created, awaiting session packet store", account_name)
        return self._forward(packet, request)

    def _forward(self, packet: Packet, request: Request) -> Packet:
        return Packet(
            src=Authority.client_manager(packet.dst.name),
            dst=Authority.nae_manager(_data_name(request)),
            body=Forwarded(request, packet.src),
        )

    # ── Replies from data managers ────────────────────────────

    def _handle_reply(self, packet: Packet) -> List[Packet]:
        reply    = packet.body
        response = reply.response
        pending  = self._pending.pop(response.msg_id, None)

        if pending is not None:
            if not response.result:
                # The session packet was refused; undo the account
                self.accounts.pop(pending.account_name, None)
                if pending.invitation is not None and self.invitations is not None:
                    self.invitations.release(pending.invitation)
        elif response.result:
            account = self.accounts.get(packet.dst.name)
            if account is not None:
                account.charge()

        return [Packet(src=packet.dst, dst=reply.origin, body=response)]

    # ── Checks ────────────────────────────────────────────────

    def _account(self, name: XorName) -> Account:
        account = self.accounts.get(name)
        if account is None:
            raise ClientError(ClientErrorCode.NO_SUCH_ACCOUNT)
        return account

    def _authorised_account(self, name: XorName, key: PublicSignKey) -> Account:
        account = self._account(name)
        if not account.is_authorised(key):
            raise ClientError(ClientErrorCode.ACCESS_DENIED)
        return account

    def _owned_account(self, name: XorName, key: PublicSignKey) -> Account:
        account = self._account(name)
        if key != account.owner_key:
            raise ClientError(ClientErrorCode.ACCESS_DENIED)
        return account

    @staticmethod
    def _check_auth_version(account: Account, version: int) -> None:
        if version != account.auth_version + 1:
            raise ClientError(
                ClientErrorCode.INVALID_SUCCESSOR,
                details={"current": account.auth_version},
            )


# ─────────────────────────────────────────────────────────────
# Data Manager
# ─────────────────────────────────────────────────────────────

class DataManager:
    """Chunk store. Applies the data model rules; never checks accounts."""

    def __init__(self) -> None:
        self.idata: Dict[XorName, ImmutableData] = {}
        self.mdata: Dict[Tuple[XorName, int], MutableData] = {}

    def handle(self, packet: Packet) -> List[Packet]:
        body = packet.body

        if isinstance(body, Forwarded):
            result   = self._apply(body.request, body.origin.client_key)
            response = Response(body.request.kind, result, body.request.msg_id)
            return [Packet(
                src=packet.dst,
                dst=packet.src,
                body=DataManagerReply(response, body.origin),
            )]

        if isinstance(body, Request) and packet.src.is_client:
            return [_respond(packet, body, self._read(body))]

        logger.warning("data manager dropping %r from %r", body, packet.src)
        return []

    def _mdata(self, name: XorName, tag: int) -> MutableData:
        data = self.mdata.get((name, tag))
        if data is None:
            raise ClientError(ClientErrorCode.NO_SUCH_DATA)
        return data

    def _apply(self, request: Request, requester: PublicSignKey) -> Result:
        try:
            if isinstance(request, PutIData):
                # Content addressed: a second put of the same bytes is a no-op
                self.idata.setdefault(request.data.name, request.data)
                return Result.ok()

            if isinstance(request, PutMData):
                key = (request.data.name, request.data.tag)
                if key in self.mdata:
                    raise ClientError(ClientErrorCode.DATA_EXISTS)
                data = request.data.copy()
                data.validate()
                self.mdata[key] = data
                return Result.ok()

            data = self._mdata(request.name, request.tag)
            if isinstance(request, MutateMDataEntries):
                data.mutate_entries(request.actions, requester)
            elif isinstance(request, SetMDataUserPermissions):
                data.set_user_permissions(
                    request.user, request.permissions, request.version, requester
                )
            elif isinstance(request, DelMDataUserPermissions):
                data.del_user_permissions(request.user, request.version, requester)
            elif isinstance(request, ChangeMDataOwner):
                data.change_owner(request.new_owners, request.version, requester)
            else:
                raise ClientError(ClientErrorCode.INVALID_OPERATION)
            return Result.ok()
        except ClientError as exc:
            return Result.err(exc)

    def _read(self, request: Request) -> Result:
        try:
            if isinstance(request, GetIData):
                chunk = self.idata.get(request.name)
                if chunk is None:
                    raise ClientError(ClientErrorCode.NO_SUCH_DATA)
                return Result.ok(chunk)

            if not isinstance(request, (
                GetMDataVersion, GetMDataShell, ListMDataEntries, GetMDataValue,
                ListMDataPermissions, ListMDataUserPermissions,
            )):
                raise ClientError(
                    ClientErrorCode.INVALID_OPERATION,
                    details={"kind": request.kind.value},
                )

            data = self._mdata(request.name, request.tag)
            if isinstance(request, GetMDataVersion):
                return Result.ok(data.version)
            if isinstance(request, GetMDataShell):
                return Result.ok(data.shell())
            if isinstance(request, ListMDataEntries):
                return Result.ok(dict(data.entries))
            if isinstance(request, GetMDataValue):
                value = data.get(request.key)
                if value is None:
                    raise ClientError(ClientErrorCode.NO_SUCH_ENTRY)
                return Result.ok(value)
            if isinstance(request, ListMDataPermissions):
                return Result.ok({u: p.copy() for u, p in data.permissions.items()})
            return Result.ok(data.user_permissions(request.user))
        except ClientError as exc:
            return Result.err(exc)


# ─────────────────────────────────────────────────────────────
# Node
# ─────────────────────────────────────────────────────────────

class TestNode:
    """A storage node on the simulated network."""

    __test__ = False

    def __init__(
        self,
        network:         Network,
        invitations:     Optional[Invitations] = None,
        account_balance: int                   = DEFAULT_ACCOUNT_BALANCE,
        name:            Optional[XorName]     = None,
    ) -> None:
        self.network = network
        self.name    = name if name is not None else XorName.random(network.new_rng())
        self.client_manager = ClientManager(account_balance, invitations)
        self.data_manager   = DataManager()
        self._inbox:   Deque[Tuple[Packet, bool]] = deque()
        self._clients: Set[XorName] = set()
        network.add_node(self)

    def __repr__(self) -> str:
        return f"TestNode({self.name!r})"

    # ── Stepping ──────────────────────────────────────────────

    def enqueue(self, packet: Packet, from_client: bool = False) -> None:
        self._inbox.append((packet, from_client))

    def poll(self) -> bool:
        """Process one inbox packet. False if the inbox was empty."""
        if not self._inbox:
            return False
        packet, from_client = self._inbox.popleft()
        if from_client:
            self._relay_from_client(packet)
        else:
            self._dispatch(packet)
        return True

    def has_client(self, name: XorName) -> bool:
        return name in self._clients

    # ── Proxy ─────────────────────────────────────────────────

    def _relay_from_client(self, packet: Packet) -> None:
        body = packet.body
        if isinstance(body, Bootstrap):
            self._handle_bootstrap(packet)
            return

        client_name = packet.src.name
        if not packet.src.is_client or client_name not in self._clients:
            logger.debug("proxy %r dropping packet from unknown client %r", self.name, client_name)
            return

        if isinstance(body, PutIData) and body.data.serialised_size() > MAX_IMMUTABLE_DATA_SIZE_IN_BYTES:
            logger.info(
                "proxy %r terminating client %r: immutable data of %d bytes",
                self.name, client_name, body.data.serialised_size(),
            )
            self._disconnect(packet.src, "immutable data too large")
            return

        logger.debug("proxy %r relaying %s for %r", self.name, type(body).__name__, client_name)
        self._route(packet)

    def _handle_bootstrap(self, packet: Packet) -> None:
        request     = packet.body
        client_name = request.pub_id.name

        if not request.pub_id.sign_key.verify(bootstrap_challenge(client_name), request.signature):
            reply = BootstrapResponse(False, "invalid bootstrap signature")
        elif self.network.node_count() < self.network.min_section_size:
            reply = BootstrapResponse(False, "too few peers")
        else:
            self._clients.add(client_name)
            reply = BootstrapResponse(True)

        logger.debug("proxy %r bootstrap of %r: %r", self.name, client_name, reply)
        self.network.send_to_client(
            client_name,
            Packet(src=Authority.managed_node(self.name), dst=packet.src, body=reply),
        )

    def _disconnect(self, client: Authority, reason: str) -> None:
        self._clients.discard(client.name)
        self.network.send_to_client(
            client.name,
            Packet(src=Authority.managed_node(self.name), dst=client, body=Disconnect(reason)),
        )

    def _deliver(self, packet: Packet) -> None:
        client_name = packet.dst.name
        if client_name not in self._clients:
            logger.debug("proxy %r dropping response for gone client %r", self.name, client_name)
            return
        self.network.send_to_client(client_name, packet)

    # ── Routing ───────────────────────────────────────────────

    def _route(self, packet: Packet) -> None:
        dst = packet.dst
        if dst.is_client:
            if dst.proxy_node_name == self.name:
                self._deliver(packet)
            else:
                self.network.send_to_node(dst.proxy_node_name, packet)
            return
        self.network.send_to_node(self.network.closest_node(dst.name), packet)

    def _dispatch(self, packet: Packet) -> None:
        dst = packet.dst
        if dst.is_client or self.network.closest_node(dst.name) != self.name:
            self._route(packet)
            return

        if dst.kind is AuthorityKind.CLIENT_MANAGER:
            outgoing = self.client_manager.handle(packet)
        elif dst.kind is AuthorityKind.NAE_MANAGER:
            outgoing = self.data_manager.handle(packet)
        else:
            logger.debug("node %r ignoring packet for %r", self.name, dst)
            outgoing = []

        for out in outgoing:
            self._route(out)


def create_nodes(
    network:         Network,
    count:           int,
    invitations:     Optional[Iterable[str]] = None,
    account_balance: int                     = DEFAULT_ACCOUNT_BALANCE,
) -> List[TestNode]:
    """
    Build count nodes on network.

    When invitations is given, account creation requires one of those
    codes and each code can be claimed once.
    """
    registry = Invitations(invitations) if invitations is not None else None
    return [
        TestNode(network, invitations=registry, account_balance=account_balance)
        for _ in range(count)
    ]
