"""
Category anomaly detectors.

- isolation_detector: Isolation Forest (primary)
- window_detector:    trailing-window z-score (fallback, deterministic)
- reasons:            explanations for model-flagged expenses
"""
