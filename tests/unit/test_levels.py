"""Level curve tests: thresholds, titles, and level-up detection."""

from studyquest.progression.levels import (
    LEVEL_THRESHOLDS,
    MAX_LEVEL,
    check_level_up,
    level_from_xp,
    level_info,
    level_title,
    xp_for_level,
)


class TestXPForLevel:
    """Cumulative thresholds follow floor(100 * 1.5 ** (L - 1))."""

    def test_level_1_starts_at_zero(self):
        assert xp_for_level(1) == 0
        assert xp_for_level(0) == 0

    def test_early_thresholds(self):
        assert xp_for_level(2) == 150
        assert xp_for_level(3) == 225
        assert xp_for_level(4) == 337
        assert xp_for_level(5) == 506

    def test_thresholds_strictly_increase(self):
        mins = [t["min_xp"] for t in LEVEL_THRESHOLDS]
        assert all(a < b for a, b in zip(mins, mins[1:]))
        assert len(LEVEL_THRESHOLDS) == MAX_LEVEL


class TestLevelFromXP:
    def test_zero_xp_is_level_1(self):
        assert level_from_xp(0) == 1

    def test_negative_xp_is_level_1(self):
        assert level_from_xp(-50) == 1

    def test_boundary_149_vs_150(self):
        assert level_from_xp(149) == 1
        assert level_from_xp(150) == 2

    def test_boundary_level_3(self):
        assert level_from_xp(224) == 2
        assert level_from_xp(225) == 3

    def test_capped_at_max_level(self):
        assert level_from_xp(10**15) == MAX_LEVEL

    def test_monotonic(self):
        levels = [level_from_xp(xp) for xp in range(0, 5000, 7)]
        assert levels == sorted(levels)


class TestCheckLevelUp:
    def test_no_change(self):
        change = check_level_up(10, 60)
        assert change.leveled_up is False
        assert change.old_level == change.new_level == 1

    def test_single_level(self):
        change = check_level_up(100, 150)
        assert change == (True, 1, 2)

    def test_multi_level_jump(self):
        """A large grant can cross several thresholds at once."""
        change = check_level_up(0, 506)
        assert change.leveled_up is True
        assert change.old_level == 1
        assert change.new_level == 5


class TestLevelTitles:
    def test_titles_by_band(self):
        assert level_title(1) == "Beginner"
        assert level_title(9) == "Beginner"
        assert level_title(10) == "Intermediate"
        assert level_title(20) == "Advanced"
        assert level_title(30) == "Expert"
        assert level_title(40) == "Master"
        assert level_title(50) == "Grandmaster"
        assert level_title(60) == "Grandmaster"


class TestLevelInfo:
    def test_progress_inside_level(self):
        info = level_info(175)  # 25 XP into level 2 (150 -> 225)
        assert info["level"] == 2
        assert info["min_xp"] == 150
        assert info["next_level_xp"] == 225
        assert info["xp_into_level"] == 25
        assert info["xp_to_next"] == 50
        assert info["progress_percent"] == 33.33

    def test_exactly_at_boundary(self):
        info = level_info(150)
        assert info["xp_into_level"] == 0
        assert info["progress_percent"] == 0.0

    def test_max_level(self):
        info = level_info(xp_for_level(MAX_LEVEL) + 1)
        assert info["level"] == MAX_LEVEL
        assert info["next_level_xp"] is None
        assert info["xp_to_next"] == 0
        assert info["progress_percent"] == 100.0
