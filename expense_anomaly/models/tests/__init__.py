"""
Test suite for the category detectors.

Tests:
- test_window_detector.py: trailing-window z-score fallback
- test_isolation_detector.py: outlier model training, scoring and errors
- test_reasons.py: explanations for model-flagged expenses
"""
