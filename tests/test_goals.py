"""
Tests for per-platform donation goals.
"""

from core.goals import GoalTracker


class TestGoalTracker:
    def setup_method(self):
        self.tracker = GoalTracker()
        self.tracker.initialize()

    def test_tiktok_donation(self):
        result = self.tracker.add_donation("tiktok", 250)
        assert result["success"] is True
        assert result["current"] == 0
        assert result["newTotal"] == 250
        assert result["formatted"] == "0250/1000 coins"
        assert result["percentage"] == 25.0
        assert result["goalCompleted"] is False

    def test_youtube_overshoot(self):
        result = self.tracker.add_donation("YouTube", 4.99)
        assert result["formatted"] == "$4.99/$1.00 USD"
        assert result["goalCompleted"] is True

    def test_totals_accumulate(self):
        self.tracker.add_donation("twitch", 30)
        self.tracker.add_donation("twitch", 20)
        assert self.tracker.format_display("twitch") == "050/100 bits"

    def test_invalid_platform(self):
        result = self.tracker.add_donation("kick", 5)
        assert result["success"] is False
        assert result["error"].startswith("Invalid platform: kick")

    def test_rejects_non_positive_amounts(self):
        for amount in (0, -3, "abc", None, True):
            result = self.tracker.add_donation("tiktok", amount)
            assert result["success"] is False
            assert "must be positive" in result["error"]
        assert self.tracker.get_goal_state("tiktok")["current"] == 0

    def test_subscription_equivalents(self):
        result = self.tracker.add_subscription_equivalent("twitch", 2)
        assert result["newTotal"] == 700
        assert result["paypiggyValue"] == 350

    def test_reset_single_platform(self):
        self.tracker.add_donation("tiktok", 10)
        self.tracker.add_donation("twitch", 10)
        self.tracker.reset("tiktok")
        states = self.tracker.get_all_goal_states()
        assert states["tiktok"]["current"] == 0
        assert states["twitch"]["current"] == 10

    def test_reset_all(self):
        self.tracker.add_donation("youtube", 1.5)
        self.tracker.reset()
        assert self.tracker.get_goal_state("youtube")["formatted"] == "$0.00/$1.00 USD"


class TestGoalConfig:
    def test_targets_and_equivalents_from_config(self, make_config):
        config = make_config(goals={"tiktokGoalTarget": 5000, "tiktokPaypiggyEquivalent": 75})
        tracker = GoalTracker(config)
        tracker.initialize()

        result = tracker.add_subscription_equivalent("tiktok")
        assert result["newTotal"] == 75
        assert result["formatted"] == "0075/5000 coins"

    def test_invalid_target_falls_back(self, make_config):
        tracker = GoalTracker(make_config(goals={"twitchGoalTarget": -1}))
        tracker.initialize()
        assert tracker.get_goal_state("twitch")["target"] == 100

    def test_unknown_platform_display(self):
        assert GoalTracker().format_display("kick") == "0/0 unknown"
