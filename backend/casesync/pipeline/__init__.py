"""
Case ingestion pipeline.

Mirrors portal cases into the dated / per-lab folder tree: an advisory
lock guards each cycle, cases run one at a time, and each case's files
download through a bounded pool while its summary PDF renders.

Entry point: ``casesync.pipeline.coordinator.CycleCoordinator``.
"""
