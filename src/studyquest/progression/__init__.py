"""Progression: XP, levels, streaks, badges and daily quests."""
