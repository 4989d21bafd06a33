'''
Clinic Analytics Test Suite

Test Modules:
-------------
- test_normalizer.py: field aliases, date priority, numeric/boolean parsing,
  accounting entry derivation
- test_treatment_classifier.py: consultation mapping, taxonomy membership,
  fallback, consultation helpers
- test_patient_type.py: New / Existing / Other rules and the batch pass
- test_revenue_metrics.py: the three averages, category breakdown, period
  aggregation, annual breakdown
- test_cross_sell.py: same-day collapse, immediate-next / any-later matrices
- test_holidays.py: calendar range and statistics
- test_validation.py: core and extended record checks
- test_ingestion.py: CSV parsing and API payload flattening
- test_repeat_analysis.py: repeat cohort statistics
- test_api.py: endpoint functions and the end-to-end pipeline

Running Tests:
--------------
    pip install -e ".[test]"
    pytest -v

Configuration:
--------------
See conftest.py for shared fixtures and test configuration.
'''

__all__ = []
