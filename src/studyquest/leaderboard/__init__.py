"""Global leaderboard: ranking engine and snapshot cache."""
