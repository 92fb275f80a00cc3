"""Tests for feature extraction and point-in-time helpers."""
