"""
Tests for TTS staging and display-time estimation.
"""

from services.overlay.tts import (
    create_message_tts,
    create_tts_stages,
    estimate_display_ms,
    message_delay_ms,
    supports_messages,
)


class TestStages:
    def test_follow_has_primary_only(self):
        stages = create_tts_stages({"type": "follow", "ttsMessage": "alice just followed", "message": "ignored"})
        assert stages == [{"text": "alice just followed", "delay": 0, "type": "primary"}]

    def test_chat_keeps_only_message_stage(self):
        stages = create_tts_stages(
            {"type": "chat-message", "ttsMessage": "alice says hello", "message": "hello", "username": "alice"}
        )
        assert stages == [{"text": "alice says hello", "delay": 0, "type": "message"}]

    def test_paypiggy_message_is_delayed(self):
        stages = create_tts_stages(
            {"type": "paypiggy", "ttsMessage": "alice just subscribed", "message": "love it", "username": "alice"}
        )
        assert [s["type"] for s in stages] == ["primary", "message"]
        assert stages[1]["delay"] == 4000
        assert stages[1]["text"] == "alice says love it"

    def test_youtube_fiat_gift_counts_as_superchat(self):
        data = {
            "type": "gift",
            "platform": "youtube",
            "currency": "USD",
            "ttsMessage": "alice sent a 5 dollars Super Chat",
            "message": "hi",
            "username": "alice",
        }
        assert supports_messages(data)
        assert create_tts_stages(data)[1]["delay"] == 4000

    def test_bits_message_is_not_read(self):
        data = {"type": "gift", "isBits": True, "currency": "bits", "ttsMessage": "alice sent 100 bits", "message": "GG"}
        assert not supports_messages(data)
        assert len(create_tts_stages(data)) == 1
        assert message_delay_ms(data) == 3000

    def test_blank_message_is_skipped(self):
        stages = create_tts_stages({"type": "paypiggy", "ttsMessage": "a just subscribed", "message": "   "})
        assert len(stages) == 1

    def test_message_username_is_shortened(self):
        assert create_message_tts("abcdefghijklmnopq", " hello ") == "abcdefghijkl says hello"


class TestEstimate:
    def test_no_stages_uses_minimum(self):
        assert estimate_display_ms([]) == 2000

    def test_slowest_stage_wins(self):
        stages = [
            {"text": "short", "delay": 0},
            {"text": " ".join(["word"] * 10), "delay": 4000},
        ]
        assert estimate_display_ms(stages) == 4000 + 400 + 10 * 170 + 1000

    def test_capped_at_maximum(self):
        stages = [{"text": " ".join(["word"] * 500), "delay": 0}]
        assert estimate_display_ms(stages) == 20000
