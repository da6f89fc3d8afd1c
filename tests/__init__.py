"""
School Portal Test Suite

Tests for:
- Account provisioning and rollback
- Assignment-based visibility
- Appraisal workflow
- Role-based access control
- Reconciliation of orphaned accounts
"""
