"""StudyQuest progression engine."""
