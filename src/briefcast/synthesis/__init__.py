"""Episode synthesis: signal claiming, prompting, model output parsing.

The orchestrator is the only component that mutates signal ownership.  A
claim is a single SQLite write transaction that flips ``QUEUED``/``ENRICHED``
signals to ``USED`` and links them to a freshly inserted ``GENERATING``
episode; every later failure releases them again in one transaction.
"""
