"""Synchronise RSS feed content into a document store."""
