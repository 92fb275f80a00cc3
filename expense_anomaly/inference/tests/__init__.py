"""Tests for category orchestration, the per-user feed and the single check."""
