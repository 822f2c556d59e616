"""
vaultharness/core/generators.py

Randomized inputs for property-style tests.

Every function takes the random stream explicitly so that one seed
reproduces a whole run. Generated workloads are always valid:

    - entries start at entry_version 0, keys pairwise distinct
    - an action batch never targets a key twice
    - update/delete carry current_version + 1, inserts target absent keys

Retry-until-unique loops are bounded by retry_limit consecutive
collisions and raise GeneratorExhausted instead of spinning forever.
"""

import random
from typing import Dict, Optional, Tuple

from vaultharness.core.authority import ClientAuthority, ClientManagerAuthority
from vaultharness.core.config import HarnessConfig
from vaultharness.core.crypto import PublicSignKey, SecretKeys
from vaultharness.core.exceptions import GeneratorExhausted
from vaultharness.core.models import (
    EntryAction,
    EntryActions,
    ImmutableData,
    MutableData,
    Value,
)
from vaultharness.core.xor_name import XorName

DEFAULT_RETRY_LIMIT = HarnessConfig.key_retry_limit

# Entry keys and values are between 1 and 9 bytes long.
_MIN_ENTRY_PART_LEN = 1
_MAX_ENTRY_PART_LEN = 10

# Fresh keys and contents produced by the action generator.
_ACTION_PART_LEN = 10


def gen_vec(size: int, rng: random.Random) -> bytes:
    """Random bytes of the given length."""
    return rng.randbytes(size)


def gen_immutable_data(size: int, rng: random.Random) -> ImmutableData:
    return ImmutableData(gen_vec(size, rng))


def gen_mutable_data(
    tag:         int,
    num_entries: int,
    owner:       PublicSignKey,
    rng:         random.Random,
    retry_limit: int = DEFAULT_RETRY_LIMIT,
) -> MutableData:
    """Mutable data with a random name, the given tag, one owner."""
    entries = gen_mutable_data_entries(num_entries, rng, retry_limit)
    return MutableData.new(XorName.random(rng), tag, {}, entries, {owner})


def gen_mutable_data_entries(
    num:         int,
    rng:         random.Random,
    retry_limit: int = DEFAULT_RETRY_LIMIT,
) -> Dict[bytes, Value]:
    entries: Dict[bytes, Value] = {}
    collisions = 0

    while len(entries) < num:
        key, value = gen_mutable_data_entry(rng)
        if key in entries:
            collisions += 1
            if collisions > retry_limit:
                raise GeneratorExhausted(
                    "could not generate a unique entry key",
                    {"requested": num, "generated": len(entries)},
                )
            continue
        collisions = 0
        entries[key] = value

    return entries


def gen_mutable_data_entry(rng: random.Random) -> Tuple[bytes, Value]:
    key_size = rng.randrange(_MIN_ENTRY_PART_LEN, _MAX_ENTRY_PART_LEN)
    key = gen_vec(key_size, rng)

    value_size = rng.randrange(_MIN_ENTRY_PART_LEN, _MAX_ENTRY_PART_LEN)
    value = Value(content=gen_vec(value_size, rng), entry_version=0)

    return key, value


def gen_mutable_data_entry_actions(
    data:        MutableData,
    count:       int,
    rng:         random.Random,
    key_size:    int = _ACTION_PART_LEN,
    retry_limit: int = DEFAULT_RETRY_LIMIT,
) -> Dict[bytes, EntryAction]:
    """
    Exactly count valid actions against the current state of data.

    A random share (capped by the number of existing keys) modifies
    distinct existing keys, each a coin flip between delete and update.
    The rest inserts fresh keys of key_size bytes.
    """
    actions = EntryActions()

    keys = data.keys()
    modify_count = min(rng.randint(0, count), len(keys))
    insert_count = count - modify_count

    for key in rng.sample(keys, modify_count):
        version = data.get(key).entry_version + 1

        if rng.getrandbits(1):
            actions.delete(key, version)
        else:
            actions.update(key, gen_vec(_ACTION_PART_LEN, rng), version)

    inserted   = 0
    collisions = 0
    while inserted < insert_count:
        key = gen_vec(key_size, rng)
        if data.get(key) is not None or key in actions:
            collisions += 1
            if collisions > retry_limit:
                raise GeneratorExhausted(
                    "could not generate a fresh key to insert",
                    {"requested": insert_count, "generated": inserted},
                )
            continue
        collisions = 0
        actions.ins(key, gen_vec(_ACTION_PART_LEN, rng), 0)
        inserted += 1

    return actions.into_dict()


def gen_client_authority(
    rng: Optional[random.Random] = None,
) -> Tuple[ClientAuthority, PublicSignKey]:
    """Random Client authority together with its client key."""
    full_id = SecretKeys.generate(rng)

    client = ClientAuthority(
        client_pub_id=full_id.public_keys,
        proxy_node_name=XorName.random(rng),
    )

    return client, full_id.sign_key


def gen_client_manager_authority(client_key: PublicSignKey) -> ClientManagerAuthority:
    """ClientManager authority for the client with the given key."""
    return ClientManagerAuthority.for_client_key(client_key)
