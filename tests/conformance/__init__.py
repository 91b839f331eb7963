"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the debt engine.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. test_decay_properties.py - Weight/survival round trip, monotonicity, additivity
2. test_sync_properties.py - Debt conservation and idempotent settlement
3. test_atomicity.py - All-or-nothing entry points

These tests use hypothesis for property-based testing.
"""
