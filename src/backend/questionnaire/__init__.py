"""NEPRA cybersecurity compliance questionnaire service."""
