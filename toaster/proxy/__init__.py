"""Standalone OAuth proxy for installations without a client secret."""
