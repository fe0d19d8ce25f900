"""Test suite for the pytest-stagehand package.

This package contains unit and integration tests validating step
composition, scenario execution, fixture lifecycles, pytest integration
and end-to-end scenarios against a sample events service.
"""
