"""
Basename (Base ENS) registration calldata builders.
"""

from __future__ import annotations

import random
import re
from dataclasses import dataclass
from typing import List, Optional

from eth_abi import encode
from eth_utils import keccak, to_checksum_address

ADJECTIVES = [
    "brave",
    "curious",
    "mighty",
    "fierce",
    "clever",
    "gentle",
    "proud",
    "quick",
    "wise",
    "bold",
]
NOUNS = [
    "eagle",
    "tiger",
    "shark",
    "falcon",
    "lion",
    "wolf",
    "bear",
    "panther",
    "otter",
    "dragon",
]

BASENAME_SUFFIX = ".basetest.eth"
BASENAME_SUFFIX_RE = re.compile(r"\.basetest\.eth$")

REGISTRATION_DURATION_SECONDS = 31557600  # 365.25 days
REGISTRATION_FEE_ETH = "0.05"
REGISTRATION_GAS_LIMIT = 400000

REGISTER_REQUEST_TYPE = "(string,address,uint256,address,bytes[],bool)"


def _selector(signature: str) -> bytes:
    return keccak(text=signature)[:4]


SET_ADDR_SELECTOR = _selector("setAddr(bytes32,address)")
SET_NAME_SELECTOR = _selector("setName(bytes32,string)")
REGISTER_SELECTOR = _selector(f"register({REGISTER_REQUEST_TYPE})")


@dataclass(frozen=True)
class RegisterRequest:
    """Arguments of ``RegistrarController.register``."""

    name: str
    owner: str
    duration: int
    resolver: str
    data: List[bytes]
    reverse_record: bool = True

    def as_tuple(self) -> tuple:
        return (
            self.name,
            to_checksum_address(self.owner),
            self.duration,
            to_checksum_address(self.resolver),
            list(self.data),
            self.reverse_record,
        )


def generate_agent_name(rng: Optional[random.Random] = None) -> str:
    """Return ``<adjective>-<noun>-agent.basetest.eth``."""

    rng = rng or random.SystemRandom()
    adjective = rng.choice(ADJECTIVES)
    noun = rng.choice(NOUNS)
    return f"{adjective}-{noun}-agent{BASENAME_SUFFIX}"


def normalize_name(name: str) -> str:
    # Generated names are plain ASCII; full ENSIP-15 normalisation is not needed
    return name.strip().lower()


def namehash(name: str) -> bytes:
    """ENS namehash of ``name``."""

    node = b"\x00" * 32
    normalized = normalize_name(name)
    if not normalized:
        return node
    for label in reversed(normalized.split(".")):
        node = keccak(node + keccak(text=label))
    return node


def build_set_addr_call(base_name: str, address: str) -> bytes:
    """Calldata for ``L2Resolver.setAddr(bytes32,address)``."""
    args = encode(["bytes32", "address"], [namehash(base_name), to_checksum_address(address)])
    return SET_ADDR_SELECTOR + args


def build_set_name_call(base_name: str) -> bytes:
    """Calldata for ``L2Resolver.setName(bytes32,string)``."""
    args = encode(["bytes32", "string"], [namehash(base_name), base_name])
    return SET_NAME_SELECTOR + args


def build_register_request(base_name: str, owner: str, resolver: str) -> RegisterRequest:
    """
    Bundle the resolver sub-calls into one registration request.

    The label passed to the registrar is the name without the
    ``.basetest.eth`` suffix.
    """
    return RegisterRequest(
        name=BASENAME_SUFFIX_RE.sub("", base_name),
        owner=owner,
        duration=REGISTRATION_DURATION_SECONDS,
        resolver=resolver,
        data=[build_set_addr_call(base_name, owner), build_set_name_call(base_name)],
        reverse_record=True,
    )


def build_register_call_data(request: RegisterRequest) -> str:
    """Calldata for ``register(RegisterRequest)`` as a 0x-prefixed hex string."""
    args = encode([REGISTER_REQUEST_TYPE], [request.as_tuple()])
    return "0x" + (REGISTER_SELECTOR + args).hex()


__all__ = [
    "ADJECTIVES",
    "NOUNS",
    "BASENAME_SUFFIX",
    "REGISTRATION_DURATION_SECONDS",
    "REGISTRATION_FEE_ETH",
    "REGISTRATION_GAS_LIMIT",
    "RegisterRequest",
    "generate_agent_name",
    "namehash",
    "build_set_addr_call",
    "build_set_name_call",
    "build_register_request",
    "build_register_call_data",
]
