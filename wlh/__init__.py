"""Workload helpers (WLH).

Small building blocks shared by the job controller and scheduler:
 - ownership inspection and pod-group name derivation
 - create-or-update / delete of a job's ConfigMap against a resource store
 - a healthz server with signal-driven shutdown over keep-alive connections

Each piece is small on purpose so it can be audited and explained.
"""
