"""
vaultharness/harness/test_client.py

Synchronous test client.

Wraps one RoutingClient and turns each request into a blocking call:

    1. drain stale events      (read-style requests only)
    2. fresh MessageId, pick destination
    3. hand the request to the routing client
    4. advance rounds until the network is quiescent
    5. match the next event against (kind, msg_id)

═══════════════════════════════════════════════════════════════════
CONTRACTS
═══════════════════════════════════════════════════════════════════

CONTRACT 1 - Correlation
    A response is accepted only if kind AND msg_id match the request.
    Anything else in its place is a ContractViolation.

CONTRACT 2 - Draining
    Read-style requests discard every pending event first.
    Write-style requests never do, so a stale event in front of a write
    response fails the test.

CONTRACT 3 - Connection state
    Requests are only sent after ensure_connected() observed Connected
    and before any Terminated was observed.

CONTRACT 4 - Destinations
    Mutations and account queries → own client manager.
    Data-addressed reads          → NaeManager(data name).
═══════════════════════════════════════════════════════════════════
"""

import logging
import random
from typing import Dict, FrozenSet, Iterable, Optional, Sequence, Tuple

from vaultharness.core.authority import Authority, ClientAuthority, ClientManagerAuthority
from vaultharness.core.config import HarnessConfig
from vaultharness.core.crypto import PublicSignKey, SecretKeys
from vaultharness.core.exceptions import ClientError, ClientErrorCode, ContractViolation
from vaultharness.core.messages import (
    ChangeMDataOwner,
    Connected,
    DelAuthKey,
    DelMDataUserPermissions,
    Event,
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
    Result,
    SetMDataUserPermissions,
    Terminated,
)
from vaultharness.core.models import (
    ACC_LOGIN_ENTRY_KEY,
    TYPE_TAG_SESSION_PACKET,
    AccountPacket,
    EntryAction,
    ImmutableData,
    MutableData,
    PermissionSet,
    User,
    Value,
)
from vaultharness.core.xor_name import XorName
from vaultharness.harness import poll
from vaultharness.harness.responses import expect_response
from vaultharness.mock.network import Network
from vaultharness.mock.routing import BootstrapConfig, RoutingClient

logger = logging.getLogger(__name__)


class TestClient:
    """Blocking facade over a simulated network client."""

    __test__ = False

    def __init__(
        self,
        network:          Network,
        config:           Optional[HarnessConfig]   = None,
        bootstrap_config: Optional[BootstrapConfig] = None,
        full_id:          Optional[SecretKeys]      = None,
        rng:              Optional[random.Random]   = None,
    ) -> None:
        self.config = config or HarnessConfig()
        self.rng    = rng if rng is not None else network.new_rng()

        self._full_id = full_id if full_id is not None else SecretKeys.generate(self.rng)
        self.routing_client = RoutingClient(
            network,
            bootstrap_config=bootstrap_config,
            full_id=self._full_id,
            msg_expiry=self.config.msg_expiry,
        )
        self._client_manager = ClientManagerAuthority.for_client_key(
            self._full_id.sign_key
        ).to_authority()

        self._connected  = False
        self._terminated = False

    def __repr__(self) -> str:
        return f"TestClient({self.name!r})"

    # ── Identity ──────────────────────────────────────────────

    @property
    def full_id(self) -> SecretKeys:
        return self._full_id

    @property
    def signing_public_key(self) -> PublicSignKey:
        return self._full_id.sign_key

    @property
    def name(self) -> XorName:
        return self._full_id.name

    def client_authority(self) -> ClientAuthority:
        return ClientAuthority(
            client_pub_id=self._full_id.public_keys,
            proxy_node_name=self.routing_client.proxy_node_name,
        )

    @property
    def client_manager(self) -> Authority:
        return self._client_manager

    def set_client_manager(self, name: XorName) -> None:
        """Send mutations to another account's manager, e.g. as an app."""
        self._client_manager = Authority.client_manager(name)

    @property
    def is_connected(self) -> bool:
        return self._connected and not self._terminated

    @property
    def is_terminated(self) -> bool:
        return self._terminated

    # ── Event loop ────────────────────────────────────────────

    def try_recv(self) -> Optional[Event]:
        event = self.routing_client.try_next_ev()
        if isinstance(event, Terminated):
            self._terminated = True
        return event

    def poll(self) -> int:
        """Run the routing client until it has nothing left to do."""
        count = 0
        while self.routing_client.poll():
            count += 1
        return count

    def poll_once(self) -> bool:
        return self.routing_client.poll()

    def flush(self) -> None:
        """Discard every event received so far."""
        self.poll()
        while True:
            event = self.try_recv()
            if event is None:
                return
            logger.debug("client %r discarding stale %r", self.name, event)

    def ensure_connected(self, nodes: Sequence) -> None:
        poll.nodes_and_client(nodes, self, self.config.max_rounds)
        event = self.try_recv()
        if not isinstance(event, Connected):
            logger.error("client %r expected Connected, got %r", self.name, event)
            raise ContractViolation("client did not connect", {"event": event})
        self._connected = True
        logger.debug("client %r connected via %r", self.name, self.routing_client.proxy_node_name)

    # ── Plumbing ──────────────────────────────────────────────

    def _msg_id(self) -> MessageId:
        return MessageId.new(self.rng)

    def _send(self, dst: Authority, request: Request) -> MessageId:
        if not self.is_connected:
            state = "terminated" if self._terminated else "not connected"
            logger.error("client %r sending %s while %s", self.name, request.kind.value, state)
            raise ContractViolation(
                f"request sent while {state}",
                {"kind": request.kind.value},
            )
        self.routing_client.send(dst, request)
        return request.msg_id

    def _settle(self, nodes: Sequence) -> None:
        poll.nodes_and_client(nodes, self, self.config.max_rounds)

    def _exchange(
        self,
        nodes:   Sequence,
        dst:     Authority,
        request: Request,
        drain:   bool,
    ) -> Optional[Event]:
        if drain:
            self.flush()
        self._send(dst, request)
        self._settle(nodes)
        return self.try_recv()

    def _call(
        self,
        nodes:              Sequence,
        dst:                Authority,
        request:            Request,
        drain:              bool,
        expect_termination: bool = False,
    ) -> Result:
        event = self._exchange(nodes, dst, request, drain)
        return expect_response(event, request.kind, request.msg_id, expect_termination)

    def _read(self, nodes: Sequence, dst: Authority, request: Request) -> Result:
        return self._call(nodes, dst, request, drain=True)

    def _write(self, nodes: Sequence, request: Request, expect_termination: bool = False) -> Result:
        return self._call(nodes, self._client_manager, request, False, expect_termination)

    # ── Immutable data ────────────────────────────────────────

    def put_idata(self, data: ImmutableData) -> MessageId:
        return self.put_idata_with_msg_id(data, self._msg_id())

    def put_idata_with_msg_id(self, data: ImmutableData, msg_id: MessageId) -> MessageId:
        return self._send(self._client_manager, PutIData(msg_id, data))

    def put_idata_response(self, data: ImmutableData, nodes: Sequence) -> Result:
        return self._write(nodes, PutIData(self._msg_id(), data))

    def put_idata_response_with_msg_id(
        self,
        data:   ImmutableData,
        msg_id: MessageId,
        nodes:  Sequence,
    ) -> Result:
        return self._write(nodes, PutIData(msg_id, data))

    def put_large_sized_idata(self, data: ImmutableData, nodes: Sequence) -> Result:
        """Put data the proxy will refuse. Termination yields INVALID_OPERATION."""
        return self._write(nodes, PutIData(self._msg_id(), data), expect_termination=True)

    def put_idata_may_response(self, data: ImmutableData, nodes: Sequence) -> Result:
        """Like put_idata_response, but silence is NETWORK_OTHER instead of fatal."""
        request = PutIData(self._msg_id(), data)
        event = self._exchange(nodes, self._client_manager, request, drain=False)
        if event is None:
            return Result.err(ClientError(ClientErrorCode.NETWORK_OTHER, "No Response"))
        return expect_response(event, request.kind, request.msg_id)

    def get_idata_response(self, name: XorName, nodes: Sequence) -> Result:
        return self._read(nodes, Authority.nae_manager(name), GetIData(self._msg_id(), name))

    def get_idata_response_with_src(
        self,
        name:  XorName,
        nodes: Sequence,
    ) -> Tuple[Result, Authority]:
        request = GetIData(self._msg_id(), name)
        event = self._exchange(nodes, Authority.nae_manager(name), request, drain=True)
        result = expect_response(event, request.kind, request.msg_id)
        return result, event.src

    # ── Mutable data ──────────────────────────────────────────

    def put_mdata(self, data: MutableData) -> MessageId:
        return self._send(
            self._client_manager,
            PutMData(self._msg_id(), data, self.signing_public_key),
        )

    def put_mdata_response(self, data: MutableData, nodes: Sequence) -> Result:
        return self._write(nodes, PutMData(self._msg_id(), data, self.signing_public_key))

    def get_mdata_version_response(self, name: XorName, tag: int, nodes: Sequence) -> Result:
        return self._read(
            nodes, Authority.nae_manager(name), GetMDataVersion(self._msg_id(), name, tag)
        )

    def get_mdata_shell_response(self, name: XorName, tag: int, nodes: Sequence) -> Result:
        return self._read(
            nodes, Authority.nae_manager(name), GetMDataShell(self._msg_id(), name, tag)
        )

    def list_mdata_entries_response(self, name: XorName, tag: int, nodes: Sequence) -> Result:
        return self._read(
            nodes, Authority.nae_manager(name), ListMDataEntries(self._msg_id(), name, tag)
        )

    def get_mdata_value_response(
        self,
        name:  XorName,
        tag:   int,
        key:   bytes,
        nodes: Sequence,
    ) -> Result:
        return self._read(
            nodes, Authority.nae_manager(name), GetMDataValue(self._msg_id(), name, tag, key)
        )

    def mutate_mdata_entries(
        self,
        name:    XorName,
        tag:     int,
        actions: Dict[bytes, EntryAction],
    ) -> MessageId:
        request = MutateMDataEntries(
            self._msg_id(), name, tag, dict(actions), self.signing_public_key
        )
        return self._send(self._client_manager, request)

    def mutate_mdata_entries_response(
        self,
        name:    XorName,
        tag:     int,
        actions: Dict[bytes, EntryAction],
        nodes:   Sequence,
    ) -> Result:
        request = MutateMDataEntries(
            self._msg_id(), name, tag, dict(actions), self.signing_public_key
        )
        return self._write(nodes, request)

    def list_mdata_permissions_response(self, name: XorName, tag: int, nodes: Sequence) -> Result:
        return self._read(
            nodes, Authority.nae_manager(name), ListMDataPermissions(self._msg_id(), name, tag)
        )

    def list_mdata_user_permissions_response(
        self,
        name:  XorName,
        tag:   int,
        user:  User,
        nodes: Sequence,
    ) -> Result:
        request = ListMDataUserPermissions(self._msg_id(), name, tag, user)
        return self._read(nodes, Authority.nae_manager(name), request)

    def set_mdata_user_permissions_response(
        self,
        name:        XorName,
        tag:         int,
        user:        User,
        permissions: PermissionSet,
        version:     int,
        nodes:       Sequence,
    ) -> Result:
        request = SetMDataUserPermissions(
            self._msg_id(), name, tag, user, permissions.copy(), version,
            self.signing_public_key,
        )
        return self._write(nodes, request)

    def del_mdata_user_permissions_response(
        self,
        name:    XorName,
        tag:     int,
        user:    User,
        version: int,
        nodes:   Sequence,
    ) -> Result:
        request = DelMDataUserPermissions(
            self._msg_id(), name, tag, user, version, self.signing_public_key
        )
        return self._write(nodes, request)

    def change_mdata_owner_response(
        self,
        name:       XorName,
        tag:        int,
        new_owners: Iterable[PublicSignKey],
        version:    int,
        nodes:      Sequence,
    ) -> Result:
        owners: FrozenSet[PublicSignKey] = frozenset(new_owners)
        request = ChangeMDataOwner(self._msg_id(), name, tag, owners, version)
        return self._write(nodes, request)

    # ── Account ───────────────────────────────────────────────

    def get_account_info_response(self, nodes: Sequence) -> Result:
        return self._read(nodes, self._client_manager, GetAccountInfo(self._msg_id()))

    def list_auth_keys_and_version_response(self, nodes: Sequence) -> Result:
        return self._read(nodes, self._client_manager, ListAuthKeysAndVersion(self._msg_id()))

    def ins_auth_key(self, key: PublicSignKey, version: int) -> MessageId:
        return self._send(self._client_manager, InsAuthKey(self._msg_id(), key, version))

    def ins_auth_key_response(self, key: PublicSignKey, version: int, nodes: Sequence) -> Result:
        return self._write(nodes, InsAuthKey(self._msg_id(), key, version))

    def del_auth_key(self, key: PublicSignKey, version: int) -> MessageId:
        return self._send(self._client_manager, DelAuthKey(self._msg_id(), key, version))

    def del_auth_key_response(self, key: PublicSignKey, version: int, nodes: Sequence) -> Result:
        return self._write(nodes, DelAuthKey(self._msg_id(), key, version))

    def _session_packet(self, invitation: Optional[str] = None) -> MutableData:
        entries: Dict[bytes, Value] = {}
        if invitation is not None:
            packet = AccountPacket.with_invitation(invitation)
            entries[ACC_LOGIN_ENTRY_KEY] = Value(packet.serialise(), 0)
        return MutableData.new(
            XorName.random(self.rng),
            TYPE_TAG_SESSION_PACKET,
            {},
            entries,
            {self.signing_public_key},
        )

    def create_account(self, nodes: Sequence) -> None:
        """Create this client's account. Raises ClientError if refused."""
        self.put_mdata_response(self._session_packet(), nodes).unwrap()

    def create_account_with_invitation(self, invitation: str) -> MessageId:
        return self.put_mdata(self._session_packet(invitation))

    def create_account_with_invitation_response(self, invitation: str, nodes: Sequence) -> Result:
        return self.put_mdata_response(self._session_packet(invitation), nodes)
