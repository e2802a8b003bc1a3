"""Setup (provisioning) helpers.

Orchestration helpers that wait for asynchronously provisioned AWS
infrastructure (e.g. ElastiCache clusters) to become usable.
"""
