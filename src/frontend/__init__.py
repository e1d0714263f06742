"""Streamlit client for the NEPRA compliance questionnaire."""
