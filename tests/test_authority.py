"""
tests/test_authority.py

Authority model: conversions and address derivation.
"""

import random

from vaultharness.core.authority import (
    Authority,
    AuthorityKind,
    ClientAuthority,
    ClientManagerAuthority,
)
from vaultharness.core.crypto import SecretKeys, client_name_from_key
from vaultharness.core.generators import gen_client_authority, gen_client_manager_authority
from vaultharness.core.xor_name import XorName


class TestClientAuthority:

    def test_accessors(self, rng):
        client, key = gen_client_authority(rng)
        assert client.client_key() == key
        assert client.name() == client.client_pub_id.name
        assert client.name() == client_name_from_key(key)

    def test_to_authority_is_lossless(self, rng):
        client, key = gen_client_authority(rng)
        auth = client.to_authority()

        assert auth.kind is AuthorityKind.CLIENT
        assert auth.is_client
        assert auth.name == client.name()
        assert auth.client_pub_id == client.client_pub_id
        assert auth.proxy_node_name == client.proxy_node_name
        assert auth.client_key == key

    def test_generation_is_reproducible(self):
        a, key_a = gen_client_authority(random.Random(5))
        b, key_b = gen_client_authority(random.Random(5))
        assert a == b
        assert key_a == key_b

    def test_generated_authorities_are_distinct(self, rng):
        a, _ = gen_client_authority(rng)
        b, _ = gen_client_authority(rng)
        assert a != b
        assert a.name() != b.name()


class TestClientManagerAuthority:

    def test_derivation_is_idempotent(self, rng):
        key = SecretKeys.generate(rng).sign_key
        assert gen_client_manager_authority(key) == gen_client_manager_authority(key)

    def test_distinct_keys_give_distinct_managers(self, rng):
        a = SecretKeys.generate(rng).sign_key
        b = SecretKeys.generate(rng).sign_key
        assert gen_client_manager_authority(a).name() != gen_client_manager_authority(b).name()

    def test_manager_is_addressed_by_client_name(self, rng):
        client, key = gen_client_authority(rng)
        manager = gen_client_manager_authority(key)
        assert manager.name() == client.name()

    def test_to_authority(self, rng):
        name = XorName.random(rng)
        auth = ClientManagerAuthority(name).to_authority()
        assert auth == Authority.client_manager(name)
        assert auth.kind is AuthorityKind.CLIENT_MANAGER
        assert not auth.is_client
        assert auth.client_key is None


def test_authority_kinds_are_not_interchangeable(rng):
    name = XorName.random(rng)
    assert Authority.nae_manager(name) != Authority.client_manager(name)
    assert Authority.managed_node(name) != Authority.nae_manager(name)


def test_client_authority_round_trips_through_authority(rng):
    keys  = SecretKeys.generate(rng)
    proxy = XorName.random(rng)
    auth  = ClientAuthority(keys.public_keys, proxy).to_authority()
    assert ClientAuthority(auth.client_pub_id, auth.proxy_node_name).to_authority() == auth
