"""Rollback — approval-gated restoration of an environment to a verified snapshot.

Modules
───────
  settings    — approvers, timeouts, integrity options from config/rollback.yaml
  reasoning   — deterministic request / option explanations
  environment — EnvironmentTarget: apply a snapshot, describe live state
  integrity   — post-apply verification → IntegrityCheck
  recovery    — failure analysis and recovery options
  engine      — RollbackEngine state machine
"""
