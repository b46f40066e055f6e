"""Learner form submission engine."""
