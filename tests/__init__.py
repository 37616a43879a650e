"""
Test suite for the ChatFleet client.

Provides:
- Frame decoding and event parsing tests
- Chat turn accumulation and formatting tests
- Job polling state machine tests
- HTTP client and observability tests
"""
