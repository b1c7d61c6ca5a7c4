"""
Tests for notification copy rendering.
"""

import pytest

from shared.notifications.builder import NotificationBuilder
from shared.notifications.errors import BuildFailure
from shared.notifications.events import EventType, create_canonical_event
from shared.notifications.templates import has_unresolved_placeholders

TS = "2024-05-01T20:00:00Z"


def build(platform, kind, **data):
    data.setdefault("username", "alice")
    data.setdefault("timestamp", TS)
    event = create_canonical_event(platform=platform, type=kind, data=data)
    return NotificationBuilder().build(event)


class TestSimpleKinds:
    def test_follow(self):
        n = build("tiktok", "follow")
        assert n.display_message == "alice just followed!"
        assert n.tts_message == "alice just followed"
        assert n.log_message == "New follower: alice"
        assert n.priority == 2
        assert n.id.startswith("tiktok-follow-")

    def test_raid(self):
        n = build("twitch", "raid", username="bob", viewerCount=42)
        assert n.display_message == "Incoming raid from bob with 42 viewers!"
        assert n.tts_message == "Incoming raid from bob with 42 viewers"

    def test_raid_with_no_viewers(self):
        n = build("twitch", "raid", username="bob", viewerCount=0)
        assert n.display_message == "Incoming raid from bob with 0 viewers!"
        assert n.tts_message == "Incoming raid from bob with 0 viewers"

    def test_raid_requires_viewer_count(self):
        with pytest.raises(BuildFailure) as exc:
            build("twitch", "raid", username="bob")
        assert exc.value.field == "viewerCount"

    def test_redemption_with_cost(self):
        n = build("twitch", "redemption", rewardTitle="Hydrate", rewardCost=500)
        assert n.display_message == "alice redeemed Hydrate (500 points)!"
        assert n.tts_message == "alice redeemed Hydrate"

    def test_command(self):
        n = build("twitch", "command", command="!hello", commandName="greetings")
        assert n.display_message == "alice used command !hello"
        assert n.tts_message == "alice used command greetings"

    def test_greeting_keeps_full_username(self):
        long_name = "A" * 60
        n = build("tiktok", "greeting", username=long_name)
        assert n.display_message == f"Welcome, {long_name}! 👋"
        assert n.tts_message == f"Hi {long_name}"

    def test_other_kinds_truncate_username(self):
        n = build("tiktok", "follow", username="B" * 60)
        assert n.username == "B" * 37 + "..."

    def test_envelope_logs_coins(self):
        n = build("tiktok", "envelope", amount=300, currency="coins")
        assert n.display_message == "alice sent a treasure chest!"
        assert n.log_message == "Treasure chest from alice: 300 coins"


class TestGifts:
    def test_bits(self):
        n = build("twitch", "gift", giftType="bits", giftCount=1, amount=100, currency="bits", message="GG")
        assert n.display_message == "alice sent 100 bits: GG"
        assert n.tts_message == "alice sent 100 bits. GG"
        assert n.log_message == "Bits: 100 from alice"

    def test_tiktok_coins(self):
        n = build("tiktok", "gift", giftType="Rose", giftCount=5, amount=5, currency="coins")
        assert n.display_message == "alice sent 5x Rose gift (5 coins)"
        assert n.tts_message == "alice sent 5 Roses for 5 coins"
        assert n.log_message == "TikTok Gift: 5x Rose (5 coins) from alice"

    def test_super_chat(self):
        n = build("youtube", "gift", giftType="Super Chat", giftCount=1, amount=5, currency="USD", message="hi")
        assert n.display_message == "alice sent a $5.00 Super Chat: hi"
        assert n.tts_message == "alice sent a 5 dollars Super Chat. hi"
        assert n.log_message == "Gift from alice: Super Chat ($5.00)"

    def test_missing_gift_type(self):
        with pytest.raises(BuildFailure) as exc:
            build("tiktok", "gift", giftType="", giftCount=1, amount=1, currency="coins")
        assert exc.value.field == "giftType"

    def test_non_positive_amount(self):
        with pytest.raises(BuildFailure) as exc:
            build("tiktok", "gift", giftType="Rose", giftCount=1, amount=0, currency="coins")
        assert exc.value.field == "amount"

    def test_error_payload_uses_error_copy(self):
        n = build("youtube", "gift", giftType="Super Chat", isError=True)
        assert n.display_message == "Error processing gift from alice (payment details unavailable)"
        assert n.tts_message == "Error processing gift from alice"


class TestPaypiggy:
    def test_twitch_new_subscriber(self):
        n = build("twitch", "paypiggy", tier="1000")
        assert n.display_message == "alice just subscribed!"
        assert n.log_message == "New subscriber: alice!"

    def test_twitch_resub_with_tier(self):
        n = build("twitch", "paypiggy", tier="2000", months=3, isRenewal=True)
        assert n.display_message == "alice renewed subscription for 3 months! (Tier 2)"
        assert n.log_message == "Subscriber renewal: alice (3 months) (Tier: 2)"

    def test_youtube_milestone(self):
        n = build("youtube", "paypiggy", membershipLevel="Gold", months=6, isRenewal=True)
        assert n.display_message == "alice renewed membership for their 6th month (Gold)!"

    def test_youtube_new_member(self):
        n = build("youtube", "paypiggy", membershipLevel="Member")
        assert n.display_message == "alice just became a member!"

    def test_tiktok_superfan(self):
        n = build("tiktok", "paypiggy", tier="superfan")
        assert n.display_message == "alice became a SuperFan!"
        assert n.tts_message == "alice became a SuperFan"

    def test_gifted_many(self):
        n = build("twitch", "giftpaypiggy", giftCount=5, tier="1000")
        assert n.display_message == "alice gifted 5 subscriptions!"
        assert n.tts_message == "alice gifted 5 subscriptions"

    def test_gifted_one_membership(self):
        n = build("youtube", "giftpaypiggy", giftCount=1)
        assert n.display_message == "alice gifted a membership!"


class TestSafety:
    def test_injected_username_is_sanitized(self):
        n = build("tiktok", "follow", username="{evil}bob")
        assert n.display_message == "bob just followed!"

    def test_stream_status_is_not_built(self):
        event = create_canonical_event(platform="twitch", type="stream-status", data={"status": "live"})
        with pytest.raises(BuildFailure):
            NotificationBuilder().build(event)

    def test_vfx_and_first_message_flow_into_dict(self):
        event = create_canonical_event(platform="tiktok", type="greeting", data={"username": "a"})
        n = NotificationBuilder().build(event, vfx_config={"commandKey": "greetings"}, is_first_message=True)
        data = n.to_dict()
        assert n.type is EventType.GREETING
        assert data["isFirstMessage"] is True
        assert data["vfxConfig"]["commandKey"] == "greetings"


EVERY_KIND = [
    ("tiktok", "follow", {}),
    ("tiktok", "share", {}),
    ("twitch", "raid", {"viewerCount": 0}),
    ("tiktok", "envelope", {"amount": 300, "currency": "coins"}),
    ("tiktok", "greeting", {}),
    ("tiktok", "farewell", {}),
    ("twitch", "command", {"command": "!hello", "commandName": "greetings"}),
    ("twitch", "redemption", {"rewardTitle": "Hydrate", "rewardCost": 500}),
    ("twitch", "chat-message", {"message": "hello {username}"}),
    ("tiktok", "gift", {"giftType": "Rose", "giftCount": 5, "amount": 5, "currency": "coins"}),
    ("twitch", "gift", {"giftType": "bits", "giftCount": 1, "amount": 100, "currency": "bits"}),
    ("youtube", "gift", {"giftType": "Super Chat", "giftCount": 1, "amount": 5, "currency": "USD"}),
    ("youtube", "gift", {"giftType": "Super Chat", "isError": True}),
    ("twitch", "paypiggy", {"tier": "2000", "months": 3, "isRenewal": True}),
    ("youtube", "paypiggy", {"membershipLevel": "Member"}),
    ("tiktok", "paypiggy", {"tier": "superfan"}),
    ("twitch", "giftpaypiggy", {"giftCount": 5, "tier": "1000"}),
    ("youtube", "giftpaypiggy", {"giftCount": 1}),
]


class TestRenderedCopy:
    @pytest.mark.parametrize("username", ["alice", "{ttsUsername}bob", "さくら✨"])
    @pytest.mark.parametrize("platform, kind, data", EVERY_KIND)
    def test_no_placeholder_or_object_text_survives(self, platform, kind, data, username):
        n = build(platform, kind, username=username, **data)
        for text in (n.display_message, n.tts_message, n.log_message):
            assert text.strip()
            assert not has_unresolved_placeholders(text)
            assert "[object Object]" not in text
            assert "{" not in text
