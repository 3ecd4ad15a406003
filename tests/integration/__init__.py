"""
Integration test package.

These tests drive the Flask app through its test client and run the
results checker end to end against CSV files on disk.
"""
