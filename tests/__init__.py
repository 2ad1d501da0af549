"""
PM2.5 Forecast Comparison Test Suite

Tests organized by module (tests/pm25/):
- test_dataset.py: loading, daily-grid preparation, integrity report
- test_metrics.py: metrics (NaN handling)
- test_models.py: the six model wrappers and ModelFactory
- test_backtesting.py: cutoff layout, leakage, cross-validation tables
- test_residuals.py: residual columns and diagnostics
- test_plots.py: figure output
- test_tasks.py: smoke test of the task chain and CLI (synthetic data)

Heavier model fits are marked slow: pytest -m "not slow"
"""
