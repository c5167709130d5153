"""
Test suite for the replication pipeline.

Covers the batch processor, change feed consumer, full sync driver, and
the periodic task scheduler.
"""
