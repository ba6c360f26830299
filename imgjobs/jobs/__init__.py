"""
Image job pipeline.

This package turns storage event notifications into compressed images:
- Intake of S3 event notifications from SQS with malformed-message discard
- In-memory registry of in-flight jobs and failure counters
- Bounded-concurrency dispatch with abort after repeated failures
- Ordered side effects: upload, delete source, publish download, acknowledge
"""
