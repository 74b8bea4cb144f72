"""
Test helpers package for the formx engine

Provides reusable helpers for:
- Test data factories (factories.py)
"""
