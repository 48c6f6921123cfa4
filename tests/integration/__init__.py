"""
Integration tests for the TLS-RPT ingest pipeline.

These tests drive the handler end to end with a mocked IMAP client or a
fake mailbox session, writing real files to a temporary directory.
"""
