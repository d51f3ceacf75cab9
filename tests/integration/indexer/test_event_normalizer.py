"""Integration tests for the event normalizer."""

import pytest

from src.core.exceptions.indexer import UnrecognizedEventError
from src.core.service.indexer.events import (
    EVENT_TYPES,
    BlockCompleted,
    BlockSettled,
    InviteCountUpdated,
    MemberJoined,
    MyBlockCreated,
    ReferralChainCreated,
    ReferralCodeGenerated,
    UserRegistered,
)
from src.core.service.indexer.normalizer import EventNormalizer, topic_for
from tests.helpers import REGISTRY, address

ZERO = "0x" + "0" * 40
BLOCK = address(0xB1)
MIXED_CASE_USER = "0x52908400098527886E0F7030069857D2E4169EE7"


class TestEventNormalizer:
    """Test decoding of raw logs into typed events."""

    @pytest.fixture
    def normalizer(self):
        return EventNormalizer()

    def test_topics_are_unique_per_event(self, normalizer):
        assert len(set(normalizer.topics)) == len(EVENT_TYPES)
        for event_cls in EVENT_TYPES:
            assert normalizer.event_type_for(topic_for(event_cls)) is event_cls

    def test_topic_is_lowercase_keccak_of_signature(self):
        topic = topic_for(UserRegistered)
        assert topic.startswith("0x")
        assert len(topic) == 66
        assert topic == topic.lower()

    @pytest.mark.parametrize("event_cls,emitter,fields", [
        (UserRegistered, None, {"user": address(1), "referrer": ZERO, "level": 1}),
        (MyBlockCreated, None, {"center": address(1), "level": 3, "block_address": BLOCK}),
        (ReferralCodeGenerated, None, {"wallet": address(1), "code": b"\x11" * 32}),
        (ReferralChainCreated, None, {"user": address(2), "referrer": address(1)}),
        (InviteCountUpdated, None, {"block_address": BLOCK, "new_count": 4}),
        (BlockSettled, None, {"block_address": BLOCK, "center": address(1), "level": 2,
                              "advanced": True, "payout_to": address(1)}),
        (MemberJoined, BLOCK, {"member": address(2), "position": 3, "amount": 20_000_000}),
        (BlockCompleted, BLOCK, {"completed_at": 1_700_000_500}),
    ])
    def test_decodes_every_known_event(self, normalizer, log_factory, event_cls, emitter, fields):
        log = log_factory.build(event_cls, emitter=emitter, block_number=7, log_index=2, **fields)

        event = normalizer.normalize(log)

        assert type(event) is event_cls
        assert event.meta.block_number == 7
        assert event.meta.log_index == 2
        assert event.meta.address == (emitter or REGISTRY)
        assert event.timestamp == log.block_timestamp
        for name, value in fields.items():
            if isinstance(value, bytes):
                assert getattr(event, name) == "0x" + value.hex()
            else:
                assert getattr(event, name) == value

    def test_addresses_are_lowercased(self, normalizer, log_factory):
        log = log_factory.build(UserRegistered, user=MIXED_CASE_USER, referrer=ZERO, level=1)
        event = normalizer.normalize(log)
        assert event.user == MIXED_CASE_USER.lower()

    def test_unknown_signature_is_unrecognized(self, normalizer, log_factory):
        log = log_factory.build(UserRegistered, user=address(1), referrer=ZERO, level=1)
        log.topics[0] = "0x" + "ee" * 32

        with pytest.raises(UnrecognizedEventError) as exc_info:
            normalizer.normalize(log)
        assert exc_info.value.topic == "0x" + "ee" * 32

    def test_log_without_topics_is_unrecognized(self, normalizer, log_factory):
        log = log_factory.build(BlockCompleted, emitter=BLOCK, completed_at=1)
        log.topics = []

        with pytest.raises(UnrecognizedEventError):
            normalizer.normalize(log)

    def test_truncated_data_is_unrecognized(self, normalizer, log_factory):
        log = log_factory.build(UserRegistered, user=address(1), referrer=ZERO, level=1)
        log.data = "0x1234"

        with pytest.raises(UnrecognizedEventError):
            normalizer.normalize(log)

    def test_wrong_indexed_topic_count_is_unrecognized(self, normalizer, log_factory):
        log = log_factory.build(ReferralChainCreated, user=address(2), referrer=address(1))
        log.topics = log.topics[:2]

        with pytest.raises(UnrecognizedEventError):
            normalizer.normalize(log)

    def test_normalize_has_no_side_effects(self, normalizer, log_factory):
        log = log_factory.build(MyBlockCreated, center=address(1), level=1, block_address=BLOCK)
        first = normalizer.normalize(log)
        second = normalizer.normalize(log)
        assert first == second
