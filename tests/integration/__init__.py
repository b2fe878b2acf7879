"""
Integration tests for the queued email sender.

These tests use mocked AWS services and an in-process image host to run
complete SQS batches through the Lambda handler.
"""
