"""Raw chain logs and the closed set of typed contract events."""

from typing import Any, ClassVar, List, Tuple

from pydantic import BaseModel, Field


REGISTRY_GROUP = "registry"
BLOCK_GROUP = "block"


def hex_prefixed(value: Any) -> str:
    """Lowercase 0x-prefixed hex for HexBytes, bytes or str input"""
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    raw = value.hex() if hasattr(value, "hex") and not isinstance(value, str) else str(value)
    raw = raw.lower()
    return raw if raw.startswith("0x") else f"0x{raw}"


class RawLog(BaseModel):
    """One log entry as returned by eth_getLogs plus its block timestamp"""
    address: str
    topics: List[str] = Field(default_factory=list)
    data: str = "0x"
    block_number: int
    block_timestamp: int
    transaction_hash: str
    log_index: int

    @property
    def order_key(self) -> Tuple[int, int]:
        return self.block_number, self.log_index

    @classmethod
    def from_web3(cls, log: Any, block_timestamp: int) -> "RawLog":
        """Build from a web3 log (AttributeDict with HexBytes values)"""
        return cls(
            address=str(log["address"]).lower(),
            topics=[hex_prefixed(topic) for topic in log["topics"]],
            data=hex_prefixed(log["data"]),
            block_number=int(log["blockNumber"]),
            block_timestamp=int(block_timestamp),
            transaction_hash=hex_prefixed(log["transactionHash"]),
            log_index=int(log["logIndex"]),
        )


class EventMeta(BaseModel):
    """Where and when an event was emitted"""
    address: str
    block_number: int
    log_index: int
    timestamp: int
    transaction_hash: str


class ContractEvent(BaseModel):
    """Base for typed events.

    ``INDEXED`` and ``DATA`` list ``(field, abi_type)`` in signature order;
    the normalizer decodes topics and data from them.
    """
    meta: EventMeta

    SIGNATURE: ClassVar[str] = ""
    GROUP: ClassVar[str] = REGISTRY_GROUP
    INDEXED: ClassVar[List[Tuple[str, str]]] = []
    DATA: ClassVar[List[Tuple[str, str]]] = []

    @classmethod
    def event_name(cls) -> str:
        return cls.SIGNATURE.split("(", 1)[0]

    @property
    def emitter(self) -> str:
        return self.meta.address

    @property
    def timestamp(self) -> int:
        return self.meta.timestamp


# Registry events

class UserRegistered(ContractEvent):
    user: str
    referrer: str
    level: int

    SIGNATURE: ClassVar[str] = "UserRegistered(address,address,uint256)"
    INDEXED: ClassVar[List[Tuple[str, str]]] = [("user", "address"), ("referrer", "address")]
    DATA: ClassVar[List[Tuple[str, str]]] = [("level", "uint256")]


class MyBlockCreated(ContractEvent):
    center: str
    level: int
    block_address: str

    SIGNATURE: ClassVar[str] = "MyBlockCreated(address,uint256,address)"
    INDEXED: ClassVar[List[Tuple[str, str]]] = [("center", "address"), ("level", "uint256")]
    DATA: ClassVar[List[Tuple[str, str]]] = [("block_address", "address")]


class ReferralCodeGenerated(ContractEvent):
    wallet: str
    code: str

    SIGNATURE: ClassVar[str] = "ReferralCodeGenerated(address,bytes32)"
    INDEXED: ClassVar[List[Tuple[str, str]]] = [("wallet", "address")]
    DATA: ClassVar[List[Tuple[str, str]]] = [("code", "bytes32")]


class ReferralChainCreated(ContractEvent):
    user: str
    referrer: str

    SIGNATURE: ClassVar[str] = "ReferralChainCreated(address,address)"
    INDEXED: ClassVar[List[Tuple[str, str]]] = [("user", "address"), ("referrer", "address")]


class InviteCountUpdated(ContractEvent):
    block_address: str
    new_count: int

    SIGNATURE: ClassVar[str] = "InviteCountUpdated(address,uint256)"
    INDEXED: ClassVar[List[Tuple[str, str]]] = [("block_address", "address")]
    DATA: ClassVar[List[Tuple[str, str]]] = [("new_count", "uint256")]


class BlockSettled(ContractEvent):
    block_address: str
    center: str
    level: int
    advanced: bool
    payout_to: str

    SIGNATURE: ClassVar[str] = "BlockSettled(address,address,uint256,bool,address)"
    INDEXED: ClassVar[List[Tuple[str, str]]] = [("block_address", "address"), ("center", "address")]
    DATA: ClassVar[List[Tuple[str, str]]] = [("level", "uint256"), ("advanced", "bool"), ("payout_to", "address")]


# Per-block events (emitted by dynamically registered block contracts)

class MemberJoined(ContractEvent):
    member: str
    position: int
    amount: int

    SIGNATURE: ClassVar[str] = "MemberJoined(address,uint256,uint256)"
    GROUP: ClassVar[str] = BLOCK_GROUP
    INDEXED: ClassVar[List[Tuple[str, str]]] = [("member", "address"), ("position", "uint256")]
    DATA: ClassVar[List[Tuple[str, str]]] = [("amount", "uint256")]


class BlockCompleted(ContractEvent):
    completed_at: int

    SIGNATURE: ClassVar[str] = "BlockCompleted(uint256)"
    GROUP: ClassVar[str] = BLOCK_GROUP
    DATA: ClassVar[List[Tuple[str, str]]] = [("completed_at", "uint256")]


EVENT_TYPES = (
    UserRegistered,
    MyBlockCreated,
    ReferralCodeGenerated,
    ReferralChainCreated,
    InviteCountUpdated,
    BlockSettled,
    MemberJoined,
    BlockCompleted,
)
