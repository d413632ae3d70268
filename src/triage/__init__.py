"""Automatic triage of GitHub issues.

This package implements a webhook-driven service that:
- Verifies and gates GitHub ``issues`` webhooks
- Classifies each new or edited issue with a language model
- Applies the missing labels and posts a triage comment
- Reports every failure through one error taxonomy (errors.py)
"""
