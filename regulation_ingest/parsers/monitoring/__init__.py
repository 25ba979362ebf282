"""Benchmarking and Prometheus metrics for the pipeline."""
