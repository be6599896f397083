"""
Core Layer - Sessions, Transactions and Resilient Streaming
===========================================================

Modules:
    constants: Protocol constants and Pydantic settings validation
    session_cache: Lazily created, periodically refreshed multiplexed session
    transaction: Transaction identity and precommit bookkeeping
    stream_reader: Streaming reads/queries that resume after transient errors
    mutations: Write buffer applied at commit
    runner: Begin (implicit), read/write, commit orchestration
    client: Wires the transport, session cache and runner together

Key Components:

Session Cache (session_cache.py):
    Holds one multiplexed session shared by every operation. The common
    path takes no lock; a missing or stale session (older than
    SESSION_REFRESH_SEC) is replaced under a lock with a double check, so
    concurrent callers create exactly one successor.

Resilient Stream Reader (stream_reader.py):
    Rows are released only up to the last resume token. A retriable error
    discards the broken stream and re-issues the request with the bound
    transaction id and that token, so the caller sees one ordered stream.

See Also:
    :mod:`spanner_session.integrations.transport`: Service calls consumed here
    :mod:`spanner_session.utils.errors`: Error taxonomy and retry classification
"""
