"""Configuration loading and provider wiring for the gcpotel exporters."""
