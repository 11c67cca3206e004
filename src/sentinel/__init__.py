"""Sentinel — anomaly detection: operational signals → classified alerts.

Modules
───────
  settings     — thresholds and registries loaded from config/detector.yaml
  policy       — pure severity / rollback-suggestion decision tables
  explanations — deterministic explanation templates per alert class
  rules        — signal → SecurityAlert, one rule per signal variant
  detector     — AnomalyDetector: stateful counters, persistence, audit
  pipeline     — replay a JSONL signal file through the detector
  reporter     — write CSV, TXT, PNG outputs
  cli          — argparse entry-point
"""
