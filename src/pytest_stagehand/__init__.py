"""Pytest plugin and runtime for phase-structured service scenarios.

The `pytest_stagehand` package runs behavior tests against a live
instance of a networked service backed by a disposable real database.

Key features:
- immutable steps in four roles: background, arrange, act and assert;
- a per-test scenario context relaying values between steps and
  resolving collaborators from the running service;
- fail-fast execution in a fixed phase order with structured logs;
- session fixtures provisioning the service and its database, with
  boundary collaborators substituted by test-controlled stand-ins.

Scenarios stay plain Python code executed by pytest, preserving its
collection, fixtures and reporting.
"""
