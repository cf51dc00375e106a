"""
falcon-os-policy Test Suite
===========================

Test organization mirrors the source code structure:
    tests/
    ├── test_core/           → Tests for ospolicy.core (config, errors, models, reports)
    ├── test_staging/        → Tests for ospolicy.staging (paths, progress, transfers)
    ├── test_orchestration/  → Tests for ospolicy.orchestration (retry, fan-out, rollout)
    ├── test_policy/         → Tests for ospolicy.policy (document, YAML rendering)
    ├── test_infrastructure/ → Tests for ospolicy.infrastructure (object stores)
    ├── test_integrations/   → Tests for ospolicy.integrations (catalog clients)
    ├── test_deployer.py     → End-to-end tests of the SensorDeployer facade
    └── conftest.py          → Shared pytest fixtures

Running Tests:
    pytest                          # Run all tests
    pytest tests/test_staging/      # Run only staging tests
    pytest --cov=ospolicy           # Run with coverage report
"""
