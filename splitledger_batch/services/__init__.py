"""Scheduler services: persistence, processing, dispatch and orchestration."""
