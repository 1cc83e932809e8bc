"""Timeline statistics for benchtrend.

Batches newly recorded measurements into jobs, reduces them to bootstrap
summary statistics in a separate worker process, and records the results
without blocking ingestion.
"""
