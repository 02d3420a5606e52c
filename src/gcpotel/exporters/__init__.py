"""Exporters for the Google Cloud observability backends.

Each backend is isolated in its own subpackage: ``monitoring`` for Cloud
Monitoring metrics and ``trace`` for Cloud Trace spans.
"""
