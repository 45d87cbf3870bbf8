"""Objective mastery tracking for course practice tests."""
